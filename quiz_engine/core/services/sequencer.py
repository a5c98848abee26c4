"""Service that fixes question and option presentation order for an attempt."""

from __future__ import annotations

from dataclasses import dataclass, field
import random

from quiz_engine.core.errors import EmptyQuizError
from quiz_engine.core.models import QuestionType, QuizDefinition

_ORDERABLE_TYPES = frozenset(
    {
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.TRUE_FALSE,
        QuestionType.MULTIPLE_SELECT,
        QuestionType.MATCHING,
        QuestionType.DRAG_DROP,
    }
)
_SEED_BITS = 32


@dataclass(frozen=True, slots=True)
class AttemptOrder:
    """Question and per-question option order fixed at attempt start."""

    question_order: list[str]
    option_orders: dict[str, list[str]] = field(default_factory=dict)


def new_seed() -> int:
    """Draw a fresh seed for a new attempt."""
    return random.SystemRandom().getrandbits(_SEED_BITS)


def build_order(quiz: QuizDefinition, seed: int) -> AttemptOrder:
    """Derive the presentation order for ``quiz``, deterministic for ``seed``.

    Only positions change: option ids and their correctness flags are carried
    through untouched.
    """
    if not quiz.questions:
        raise EmptyQuizError(f"Quiz {quiz.id} has no questions.")

    rng = random.Random(seed)
    settings = quiz.settings

    question_order = [question.id for question in quiz.questions]
    if settings.shuffle_questions:
        rng.shuffle(question_order)

    option_orders: dict[str, list[str]] = {}
    for question in quiz.questions:
        if question.type not in _ORDERABLE_TYPES or not question.options:
            continue
        order = [option.id for option in question.options]
        if settings.shuffle_options:
            rng.shuffle(order)
        option_orders[question.id] = order

    return AttemptOrder(question_order=question_order, option_orders=option_orders)
