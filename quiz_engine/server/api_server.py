"""FastAPI application exposing the attempt engine over HTTP."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field
import uvicorn

from quiz_engine.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from quiz_engine.core.attempt_codec import attempt_to_dict
from quiz_engine.core.attempt_engine import AttemptEngine
from quiz_engine.core.errors import (
    AttemptEngineError,
    AttemptFinalized,
    AttemptInProgress,
    EmptyQuizError,
    GradingNotAllowed,
    InvalidState,
    NotFound,
    PauseNotAllowed,
    QuizDefinitionError,
    QuizNotPublished,
    RetakeLimitExceeded,
    UnknownQuestion,
)
from quiz_engine.core.models import QuizAttempt

_STATUS_CODES: dict[type[AttemptEngineError], int] = {
    NotFound: 404,
    QuizNotPublished: 403,
    RetakeLimitExceeded: 403,
    PauseNotAllowed: 403,
    AttemptInProgress: 409,
    AttemptFinalized: 409,
    InvalidState: 409,
    GradingNotAllowed: 409,
    EmptyQuizError: 422,
    UnknownQuestion: 422,
    QuizDefinitionError: 422,
}


class StartPayload(BaseModel):
    """Payload schema for starting an attempt."""

    user_id: str = Field(min_length=1)


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers."""

    question_id: str
    answer: Any = None
    time_spent_seconds: int = Field(default=0, ge=0)


class GradePayload(BaseModel):
    """Payload schema for manual grading of an essay answer."""

    points: int = Field(ge=0)
    reviewer_id: str = Field(min_length=1)
    notes: str = ""


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except AttemptEngineError as exc:
        status_code = next(
            (code for kind, code in _STATUS_CODES.items() if isinstance(exc, kind)),
            400,
        )
        raise HTTPException(
            status_code=status_code,
            detail={"error": type(exc).__name__, "message": str(exc)},
        ) from exc


def _attempt_view(engine: AttemptEngine, attempt: QuizAttempt) -> dict[str, object]:
    """Serialize an attempt with the live countdown instead of the stored balance."""
    data = attempt_to_dict(attempt)
    data["time_remaining_seconds"] = engine.remaining_for(attempt)
    return data


def _get_engine_dependency(engine: AttemptEngine):
    def dependency() -> AttemptEngine:
        return engine

    return dependency


def create_api_app(engine: AttemptEngine) -> FastAPI:
    """Create a FastAPI application wired to the provided engine."""
    app = FastAPI(title="Quiz Attempt API", version="0.1.0")
    engine_dep = _get_engine_dependency(engine)

    @app.post("/quizzes/{quiz_id}/attempts", status_code=201)
    def start_attempt(
        quiz_id: str,
        payload: StartPayload,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            attempt = manager.start(payload.user_id, quiz_id)
        return _attempt_view(manager, attempt)

    @app.get("/quizzes/{quiz_id}/attempts")
    def list_attempts(
        quiz_id: str,
        user_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> list[dict[str, object]]:
        with _translate_errors():
            attempts = manager.list_attempts(user_id, quiz_id)
        return [_attempt_view(manager, attempt) for attempt in attempts]

    @app.get("/quizzes/{quiz_id}/results")
    def list_results(
        quiz_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> list[dict[str, object]]:
        with _translate_errors():
            attempts = manager.list_quiz_results(quiz_id)
        return [_attempt_view(manager, attempt) for attempt in attempts]

    @app.get("/quizzes/{quiz_id}/statistics")
    def get_statistics(
        quiz_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            return asdict(manager.quiz_statistics(quiz_id))

    @app.get("/attempts/{attempt_id}")
    def get_attempt(
        attempt_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            attempt = manager.get_attempt(attempt_id)
        return _attempt_view(manager, attempt)

    @app.put("/attempts/{attempt_id}/answers")
    def submit_answer(
        attempt_id: str,
        payload: AnswerPayload,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            attempt = manager.submit_answer(
                attempt_id,
                payload.question_id,
                payload.answer,
                payload.time_spent_seconds,
            )
        return _attempt_view(manager, attempt)

    @app.put("/attempts/{attempt_id}/pause")
    def pause_attempt(
        attempt_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            attempt = manager.pause(attempt_id)
        return _attempt_view(manager, attempt)

    @app.put("/attempts/{attempt_id}/resume")
    def resume_attempt(
        attempt_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            attempt = manager.resume(attempt_id)
        return _attempt_view(manager, attempt)

    @app.put("/attempts/{attempt_id}/submit")
    def submit_attempt(
        attempt_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            attempt = manager.submit(attempt_id)
        return _attempt_view(manager, attempt)

    @app.get("/attempts/{attempt_id}/timer")
    def get_timer(
        attempt_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            remaining = manager.time_remaining(attempt_id)
            attempt = manager.get_attempt(attempt_id)
        return {
            "attempt_id": attempt_id,
            "status": attempt.status.value,
            "time_remaining_seconds": remaining,
        }

    @app.get("/attempts/{attempt_id}/report")
    def get_report(
        attempt_id: str,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            report = manager.build_report(attempt_id)
        return asdict(report)

    @app.put("/attempts/{attempt_id}/answers/{question_id}/grade")
    def grade_answer(
        attempt_id: str,
        question_id: str,
        payload: GradePayload,
        manager: AttemptEngine = Depends(engine_dep),
    ) -> dict[str, object]:
        with _translate_errors():
            attempt = manager.grade_answer(
                attempt_id,
                question_id,
                payload.points,
                payload.reviewer_id,
                payload.notes,
            )
        return _attempt_view(manager, attempt)

    return app


def run_api_server(
    engine: AttemptEngine,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Serve the API on the calling thread until interrupted."""
    app = create_api_app(engine)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    server.run()
