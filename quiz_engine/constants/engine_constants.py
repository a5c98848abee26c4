"""Engine-wide constants for timing and scoring."""

TICK_INTERVAL_SECONDS: float = 1.0
TIMER_THREAD_NAME: str = "QuizTimerService"
DEFAULT_PASS_PERCENTAGE: int = 70
DEFAULT_QUESTION_POINTS: int = 1
