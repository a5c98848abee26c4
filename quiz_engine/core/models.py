"""Domain models for quiz definitions and quiz attempts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from quiz_engine.constants.engine_constants import (
    DEFAULT_PASS_PERCENTAGE,
    DEFAULT_QUESTION_POINTS,
)


class QuestionType(str, Enum):
    """Supported question kinds."""

    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    MULTIPLE_SELECT = "multiple-select"
    FILL_BLANK = "fill-blank"
    DRAG_DROP = "drag-drop"
    MATCHING = "matching"
    ESSAY = "essay"


class AttemptStatus(str, Enum):
    """Lifecycle states of a quiz attempt."""

    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({AttemptStatus.COMPLETED, AttemptStatus.TIMEOUT})
ACTIVE_STATUSES = frozenset(
    {AttemptStatus.NOT_STARTED, AttemptStatus.IN_PROGRESS, AttemptStatus.PAUSED}
)


@dataclass(frozen=True, slots=True)
class QuizOption:
    """Presentable option of a choice, selection, matching or drag-drop question."""

    id: str
    text: str = ""
    is_correct: bool = False


@dataclass(frozen=True, slots=True)
class Question:
    """Single question of a quiz definition.

    ``correct_answer`` depends on the type: a string for fill-blank, an ordered
    list of item ids for drag-drop and a list of ``{"left", "right"}`` pairs
    for matching. Choice-based types carry correctness on their options.
    """

    id: str
    type: QuestionType
    text: str = ""
    options: tuple[QuizOption, ...] = ()
    correct_answer: object = None
    points: int = DEFAULT_QUESTION_POINTS
    is_required: bool = True
    explanation: str = ""

    def correct_option_ids(self) -> list[str]:
        return [option.id for option in self.options if option.is_correct]


@dataclass(frozen=True, slots=True)
class QuizSettings:
    """Attempt policy for a quiz. The ``show_*`` flags only affect reporting."""

    time_limit_seconds: int = 0  # 0 means unlimited
    allow_retakes: bool = True
    max_retakes: int = 0  # 0 means unlimited
    shuffle_questions: bool = False
    shuffle_options: bool = False
    pass_percentage: int = DEFAULT_PASS_PERCENTAGE
    allow_pause: bool = True
    show_results: bool = True
    show_correct_answers: bool = True
    show_explanation: bool = True

    @property
    def has_time_limit(self) -> bool:
        return self.time_limit_seconds > 0


@dataclass(frozen=True, slots=True)
class QuizDefinition:
    """Read-only quiz content consumed by the engine."""

    id: str
    questions: tuple[Question, ...]
    settings: QuizSettings = field(default_factory=QuizSettings)
    title: str = ""
    is_published: bool = True

    def question_by_id(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)

    def questions_by_id(self) -> dict[str, Question]:
        return {question.id: question for question in self.questions}


@dataclass(slots=True)
class AnswerRecord:
    """Evaluated answer stored on an attempt, one per question."""

    answer: object
    time_spent_seconds: int = 0
    points_earned: int = 0
    is_correct: bool = False
    requires_manual_grading: bool = False
    submitted_at: datetime | None = None


@dataclass(slots=True)
class QuizAttempt:
    """One user's run through a quiz, from start to finalization.

    While the attempt is running, ``time_remaining_seconds`` holds the balance
    as of ``resumed_at``; the live value is derived from those two fields.
    ``None`` means the quiz has no time limit.
    """

    id: str
    quiz_id: str
    user_id: str
    attempt_number: int = 1
    status: AttemptStatus = AttemptStatus.NOT_STARTED
    seed: int = 0
    question_order: list[str] = field(default_factory=list)
    option_orders: dict[str, list[str]] = field(default_factory=dict)
    answers: dict[str, AnswerRecord] = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    paused_at: datetime | None = None
    resumed_at: datetime | None = None
    time_remaining_seconds: int | None = None
    time_spent_seconds: int = 0
    score: int | None = None
    max_score: int | None = None
    percentage: int | None = None
    passed: bool | None = None
    reviewed: bool = False
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def pending_review(self) -> bool:
        return any(record.requires_manual_grading for record in self.answers.values())
