"""Named failures raised by the quiz attempt engine."""

from __future__ import annotations


class AttemptEngineError(Exception):
    """Base class for every failure the engine reports to its caller."""


class NotFound(AttemptEngineError):
    """Raised when a referenced quiz or attempt does not exist."""


class EmptyQuizError(AttemptEngineError):
    """Raised when a quiz without questions is started."""


class QuizNotPublished(AttemptEngineError):
    """Raised when an unpublished quiz is started."""


class RetakeLimitExceeded(AttemptEngineError):
    """Raised when the user has used up the allowed number of attempts."""


class AttemptInProgress(AttemptEngineError):
    """Raised when the user already has an unfinished attempt on the quiz."""


class InvalidState(AttemptEngineError):
    """Raised when an operation is not valid for the attempt's status."""


class AttemptFinalized(InvalidState):
    """Raised when a completed or timed-out attempt would be mutated."""


class UnknownQuestion(AttemptEngineError):
    """Raised when an answer targets a question outside the attempt."""


class PauseNotAllowed(AttemptEngineError):
    """Raised when the quiz settings or the attempt status forbid pausing."""


class GradingNotAllowed(AttemptEngineError):
    """Raised when a manual grade cannot be applied to an answer."""


class QuizDefinitionError(AttemptEngineError):
    """Raised when a quiz definition cannot be parsed or is inconsistent."""
