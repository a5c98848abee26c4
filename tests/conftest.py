from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from quiz_engine.core.attempt_engine import AttemptEngine
from quiz_engine.core.models import (
    Question,
    QuestionType,
    QuizDefinition,
    QuizOption,
    QuizSettings,
)
from quiz_engine.core.services.attempt_store import InMemoryAttemptStore


class ManualClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def sample_questions() -> tuple[Question, ...]:
    return (
        Question(
            id="q1",
            type=QuestionType.MULTIPLE_CHOICE,
            text="Capital of France?",
            options=(
                QuizOption(id="a", text="Paris", is_correct=True),
                QuizOption(id="b", text="Lyon"),
                QuizOption(id="c", text="Nice"),
            ),
            points=1,
            explanation="Paris has been the capital since 987.",
        ),
        Question(
            id="q2",
            type=QuestionType.MULTIPLE_SELECT,
            text="Pick the prime numbers",
            options=(
                QuizOption(id="A", text="2", is_correct=True),
                QuizOption(id="B", text="4"),
                QuizOption(id="C", text="5", is_correct=True),
            ),
            points=2,
        ),
        Question(
            id="q3",
            type=QuestionType.FILL_BLANK,
            text="Capital of Italy?",
            correct_answer="Rome",
            points=3,
        ),
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_quiz():
    def factory(quiz_id: str = "quiz-1", questions=None, **settings) -> QuizDefinition:
        return QuizDefinition(
            id=quiz_id,
            title="Sample quiz",
            questions=sample_questions() if questions is None else tuple(questions),
            settings=replace(QuizSettings(), **settings),
        )

    return factory


@pytest.fixture
def store() -> InMemoryAttemptStore:
    return InMemoryAttemptStore()


@pytest.fixture
def engine(store: InMemoryAttemptStore, clock: ManualClock) -> AttemptEngine:
    ids = count(1)
    return AttemptEngine(
        store,
        clock=clock,
        seed_factory=lambda: 1234,
        id_factory=lambda: f"attempt-{next(ids)}",
    )
