"""Timed quiz attempt engine."""

from .core.attempt_engine import AttemptEngine
from .core.errors import (
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
from .core.services.attempt_store import AttemptStore, InMemoryAttemptStore, JsonDirectoryAttemptStore

__all__ = [
    "AttemptEngine",
    "AttemptEngineError",
    "AttemptFinalized",
    "AttemptInProgress",
    "AttemptStore",
    "EmptyQuizError",
    "GradingNotAllowed",
    "InMemoryAttemptStore",
    "InvalidState",
    "JsonDirectoryAttemptStore",
    "NotFound",
    "PauseNotAllowed",
    "QuizDefinitionError",
    "QuizNotPublished",
    "RetakeLimitExceeded",
    "UnknownQuestion",
]
