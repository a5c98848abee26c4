"""Conversion of quiz definitions and attempts to and from plain dicts.

The dict form only contains JSON types: timestamps are ISO-8601 strings and
enums are stored by value, so ``json.dumps`` / ``json.loads`` round-trips every
field without loss.
"""

from __future__ import annotations

from datetime import datetime
import json
from typing import Any

from quiz_engine.constants.engine_constants import DEFAULT_PASS_PERCENTAGE, DEFAULT_QUESTION_POINTS
from quiz_engine.core.errors import QuizDefinitionError
from quiz_engine.core.models import (
    AnswerRecord,
    AttemptStatus,
    Question,
    QuestionType,
    QuizAttempt,
    QuizDefinition,
    QuizOption,
    QuizSettings,
)

_SETTINGS_DEFAULTS = QuizSettings()


def _encode_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _decode_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def normalize_answer(value: object) -> object:
    """Coerce a submitted answer into JSON types (sets become sorted lists)."""
    if isinstance(value, (set, frozenset)):
        return sorted((normalize_answer(item) for item in value), key=repr)
    if isinstance(value, (list, tuple)):
        return [normalize_answer(item) for item in value]
    if isinstance(value, dict):
        return {str(key): normalize_answer(item) for key, item in value.items()}
    return value


def quiz_to_dict(quiz: QuizDefinition) -> dict[str, Any]:
    settings = quiz.settings
    return {
        "id": quiz.id,
        "title": quiz.title,
        "is_published": quiz.is_published,
        "settings": {
            "time_limit_seconds": settings.time_limit_seconds,
            "allow_retakes": settings.allow_retakes,
            "max_retakes": settings.max_retakes,
            "shuffle_questions": settings.shuffle_questions,
            "shuffle_options": settings.shuffle_options,
            "pass_percentage": settings.pass_percentage,
            "allow_pause": settings.allow_pause,
            "show_results": settings.show_results,
            "show_correct_answers": settings.show_correct_answers,
            "show_explanation": settings.show_explanation,
        },
        "questions": [
            {
                "id": question.id,
                "type": question.type.value,
                "text": question.text,
                "options": [
                    {"id": option.id, "text": option.text, "is_correct": option.is_correct}
                    for option in question.options
                ],
                "correct_answer": question.correct_answer,
                "points": question.points,
                "is_required": question.is_required,
                "explanation": question.explanation,
            }
            for question in quiz.questions
        ],
    }


def quiz_from_dict(data: dict[str, Any]) -> QuizDefinition:
    """Build a quiz definition, raising ``QuizDefinitionError`` on bad shape."""
    try:
        raw_settings = data.get("settings") or {}
        settings = QuizSettings(
            time_limit_seconds=int(raw_settings.get("time_limit_seconds", 0)),
            allow_retakes=bool(raw_settings.get("allow_retakes", _SETTINGS_DEFAULTS.allow_retakes)),
            max_retakes=int(raw_settings.get("max_retakes", 0)),
            shuffle_questions=bool(raw_settings.get("shuffle_questions", False)),
            shuffle_options=bool(raw_settings.get("shuffle_options", False)),
            pass_percentage=int(raw_settings.get("pass_percentage", DEFAULT_PASS_PERCENTAGE)),
            allow_pause=bool(raw_settings.get("allow_pause", _SETTINGS_DEFAULTS.allow_pause)),
            show_results=bool(raw_settings.get("show_results", True)),
            show_correct_answers=bool(raw_settings.get("show_correct_answers", True)),
            show_explanation=bool(raw_settings.get("show_explanation", True)),
        )
        questions = tuple(_question_from_dict(raw) for raw in data.get("questions", []))
        return QuizDefinition(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            is_published=bool(data.get("is_published", True)),
            settings=settings,
            questions=questions,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise QuizDefinitionError(f"Malformed quiz definition: {exc}") from exc


def _question_from_dict(data: dict[str, Any]) -> Question:
    return Question(
        id=str(data["id"]),
        type=QuestionType(data["type"]),
        text=str(data.get("text", "")),
        options=tuple(
            QuizOption(
                id=str(option["id"]),
                text=str(option.get("text", "")),
                is_correct=bool(option.get("is_correct", False)),
            )
            for option in data.get("options", [])
        ),
        correct_answer=data.get("correct_answer"),
        points=int(data.get("points", DEFAULT_QUESTION_POINTS)),
        is_required=bool(data.get("is_required", True)),
        explanation=str(data.get("explanation", "")),
    )


def attempt_to_dict(attempt: QuizAttempt) -> dict[str, Any]:
    return {
        "id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "user_id": attempt.user_id,
        "attempt_number": attempt.attempt_number,
        "status": attempt.status.value,
        "seed": attempt.seed,
        "question_order": list(attempt.question_order),
        "option_orders": {qid: list(order) for qid, order in attempt.option_orders.items()},
        "answers": {
            question_id: {
                "answer": record.answer,
                "time_spent_seconds": record.time_spent_seconds,
                "points_earned": record.points_earned,
                "is_correct": record.is_correct,
                "requires_manual_grading": record.requires_manual_grading,
                "submitted_at": _encode_time(record.submitted_at),
            }
            for question_id, record in attempt.answers.items()
        },
        "started_at": _encode_time(attempt.started_at),
        "completed_at": _encode_time(attempt.completed_at),
        "paused_at": _encode_time(attempt.paused_at),
        "resumed_at": _encode_time(attempt.resumed_at),
        "time_remaining_seconds": attempt.time_remaining_seconds,
        "time_spent_seconds": attempt.time_spent_seconds,
        "score": attempt.score,
        "max_score": attempt.max_score,
        "percentage": attempt.percentage,
        "passed": attempt.passed,
        "pending_review": attempt.pending_review,
        "reviewed": attempt.reviewed,
        "reviewed_by": attempt.reviewed_by,
        "reviewed_at": _encode_time(attempt.reviewed_at),
        "review_notes": attempt.review_notes,
    }


def attempt_from_dict(data: dict[str, Any]) -> QuizAttempt:
    return QuizAttempt(
        id=data["id"],
        quiz_id=data["quiz_id"],
        user_id=data["user_id"],
        attempt_number=data.get("attempt_number", 1),
        status=AttemptStatus(data["status"]),
        seed=data.get("seed", 0),
        question_order=list(data.get("question_order", [])),
        option_orders={qid: list(order) for qid, order in data.get("option_orders", {}).items()},
        answers={
            question_id: AnswerRecord(
                answer=raw["answer"],
                time_spent_seconds=raw.get("time_spent_seconds", 0),
                points_earned=raw.get("points_earned", 0),
                is_correct=raw.get("is_correct", False),
                requires_manual_grading=raw.get("requires_manual_grading", False),
                submitted_at=_decode_time(raw.get("submitted_at")),
            )
            for question_id, raw in data.get("answers", {}).items()
        },
        started_at=_decode_time(data.get("started_at")),
        completed_at=_decode_time(data.get("completed_at")),
        paused_at=_decode_time(data.get("paused_at")),
        resumed_at=_decode_time(data.get("resumed_at")),
        time_remaining_seconds=data.get("time_remaining_seconds"),
        time_spent_seconds=data.get("time_spent_seconds", 0),
        score=data.get("score"),
        max_score=data.get("max_score"),
        percentage=data.get("percentage"),
        passed=data.get("passed"),
        reviewed=data.get("reviewed", False),
        reviewed_by=data.get("reviewed_by"),
        reviewed_at=_decode_time(data.get("reviewed_at")),
        review_notes=data.get("review_notes", ""),
    )


def dump_attempt(attempt: QuizAttempt) -> str:
    return json.dumps(attempt_to_dict(attempt), indent=2, sort_keys=True)


def load_attempt(text: str) -> QuizAttempt:
    return attempt_from_dict(json.loads(text))
