"""Network configuration constants for the attempt API."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
DEFAULT_DATA_DIR: str = "quiz_data"
