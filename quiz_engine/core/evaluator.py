"""Correctness rules for every question type.

All checks are pure: they look only at the question definition and the
submitted value. A value of the wrong shape for the question type (``None``
for an unanswered question, a string where a list is expected, ...) is simply
incorrect and never raises.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from quiz_engine.core.models import Question, QuestionType

EMPTY_ANSWER: object = None


@dataclass(frozen=True, slots=True)
class Evaluation:
    """Outcome of checking one submitted answer."""

    is_correct: bool
    points_earned: int
    requires_manual_grading: bool = False


def evaluate(question: Question, answer: object) -> Evaluation:
    """Return correctness and points earned for ``answer`` on ``question``."""
    if question.type is QuestionType.ESSAY:
        return Evaluation(is_correct=False, points_earned=0, requires_manual_grading=True)

    checker = _CHECKERS[question.type]
    is_correct = checker(question, answer)
    return Evaluation(
        is_correct=is_correct,
        points_earned=question.points if is_correct else 0,
    )


def _is_sequence(value: object) -> bool:
    return isinstance(value, (list, tuple)) and not isinstance(value, str)


def _check_single_choice(question: Question, answer: object) -> bool:
    if not isinstance(answer, str):
        return False
    correct = question.correct_option_ids()
    return bool(correct) and answer == correct[0]


def _check_multiple_select(question: Question, answer: object) -> bool:
    if not isinstance(answer, (list, tuple, set, frozenset)):
        return False
    if not all(isinstance(item, str) for item in answer):
        return False
    correct = set(question.correct_option_ids())
    if not correct:
        return False
    return set(answer) == correct


def _normalize_text(value: str) -> str:
    return value.strip().casefold()


def _check_fill_blank(question: Question, answer: object) -> bool:
    if not isinstance(answer, str) or not isinstance(question.correct_answer, str):
        return False
    expected = _normalize_text(question.correct_answer)
    return bool(expected) and _normalize_text(answer) == expected


def _check_drag_drop(question: Question, answer: object) -> bool:
    if not _is_sequence(answer) or not _is_sequence(question.correct_answer):
        return False
    expected = list(question.correct_answer)
    return bool(expected) and list(answer) == expected


def normalize_pairs(value: object) -> frozenset[tuple[object, object]] | None:
    """Turn matching pairs into a comparable set, or ``None`` if malformed.

    Accepts ``{"left": .., "right": ..}`` mappings or two-item sequences.
    """
    if not _is_sequence(value):
        return None
    pairs: set[tuple[object, object]] = set()
    for item in value:
        if isinstance(item, dict):
            if "left" not in item or "right" not in item:
                return None
            pair = (item["left"], item["right"])
        elif _is_sequence(item) and len(item) == 2:
            pair = (item[0], item[1])
        else:
            return None
        if not all(isinstance(side, (str, int)) for side in pair):
            return None
        pairs.add(pair)
    return frozenset(pairs)


def _check_matching(question: Question, answer: object) -> bool:
    expected = normalize_pairs(question.correct_answer)
    if not expected:
        return False
    return normalize_pairs(answer) == expected


_CHECKERS: dict[QuestionType, Callable[[Question, object], bool]] = {
    QuestionType.MULTIPLE_CHOICE: _check_single_choice,
    QuestionType.TRUE_FALSE: _check_single_choice,
    QuestionType.MULTIPLE_SELECT: _check_multiple_select,
    QuestionType.FILL_BLANK: _check_fill_blank,
    QuestionType.DRAG_DROP: _check_drag_drop,
    QuestionType.MATCHING: _check_matching,
}
