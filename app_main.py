"""Application entry point for the quiz attempt service."""

from __future__ import annotations

import argparse
from pathlib import Path

from quiz_engine.constants.network_constants import DEFAULT_DATA_DIR, DEFAULT_HOST, DEFAULT_PORT
from quiz_engine.core.attempt_engine import AttemptEngine
from quiz_engine.core.services.attempt_store import JsonDirectoryAttemptStore
from quiz_engine.core.services.timer_controller import TimerService
from quiz_engine.server.api_server import run_api_server
from quiz_engine.utils.logging_config import configure_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve timed quiz attempts over HTTP.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path(DEFAULT_DATA_DIR),
        help="Directory holding quizzes/<id>.json and attempts/<id>.json",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Initialize logging, start the timer service, and serve the API."""
    args = _parse_args(argv)
    logger = configure_logging()
    logger.info("Starting quiz attempt service with data in %s", args.data_dir.resolve())

    store = JsonDirectoryAttemptStore(args.data_dir)
    engine = AttemptEngine(store)
    timer_service = TimerService(engine)
    timer_service.start()
    try:
        run_api_server(engine, host=args.host, port=args.port)
    finally:
        timer_service.stop(timeout=2.0)


if __name__ == "__main__":
    main()
