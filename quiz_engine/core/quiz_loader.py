"""Reading and writing quiz definitions as JSON documents.

Document layout::

    {
      "id": "geo-101",
      "title": "Capitals",
      "is_published": true,
      "settings": {"time_limit_seconds": 600, "pass_percentage": 70, ...},
      "questions": [
        {"id": "q1", "type": "multiple-choice", "text": "Capital of France?",
         "options": [{"id": "a", "text": "Paris", "is_correct": true},
                     {"id": "b", "text": "Lyon"}],
         "points": 1},
        {"id": "q2", "type": "fill-blank", "text": "Capital of Italy?",
         "correct_answer": "Rome", "points": 2}
      ]
    }

Missing settings fall back to the defaults of ``QuizSettings``.
"""

from __future__ import annotations

import json
from pathlib import Path

from quiz_engine.core.attempt_codec import quiz_from_dict, quiz_to_dict
from quiz_engine.core.errors import QuizDefinitionError
from quiz_engine.core.evaluator import normalize_pairs
from quiz_engine.core.models import Question, QuestionType, QuizDefinition

_CHOICE_TYPES = (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE)


def load_quiz_from_file(file_path: Path) -> QuizDefinition:
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise QuizDefinitionError(f"{file_path.name} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise QuizDefinitionError(f"{file_path.name} must contain a JSON object.")
    return parse_quiz(data)


def parse_quiz(data: dict) -> QuizDefinition:
    """Decode and validate a quiz definition document."""
    quiz = quiz_from_dict(data)
    validate_quiz(quiz)
    return quiz


def save_quiz_to_file(file_path: Path, quiz: QuizDefinition) -> None:
    validate_quiz(quiz)
    file_path = file_path.resolve()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    document = json.dumps(quiz_to_dict(quiz), indent=2, ensure_ascii=False)
    file_path.write_text(document + "\n", encoding="utf-8")


def validate_quiz(quiz: QuizDefinition) -> None:
    if not quiz.id.strip():
        raise QuizDefinitionError("Quiz id must not be empty.")

    settings = quiz.settings
    if settings.time_limit_seconds < 0:
        raise QuizDefinitionError("Time limit must not be negative.")
    if settings.max_retakes < 0:
        raise QuizDefinitionError("Maximum retakes must not be negative.")
    if not 0 <= settings.pass_percentage <= 100:
        raise QuizDefinitionError("Pass percentage must be between 0 and 100.")

    seen: set[str] = set()
    for question in quiz.questions:
        if question.id in seen:
            raise QuizDefinitionError(f"Duplicate question id '{question.id}'.")
        seen.add(question.id)
        _validate_question(question)


def _validate_question(question: Question) -> None:
    if question.points <= 0:
        raise QuizDefinitionError(f"Question {question.id}: points must be a positive integer.")

    option_ids = [option.id for option in question.options]
    if len(option_ids) != len(set(option_ids)):
        raise QuizDefinitionError(f"Question {question.id}: option ids must be unique.")

    correct_count = sum(1 for option in question.options if option.is_correct)
    if question.type in _CHOICE_TYPES and correct_count != 1:
        raise QuizDefinitionError(
            f"Question {question.id}: exactly one option must be marked correct."
        )
    if question.type is QuestionType.MULTIPLE_SELECT and correct_count == 0:
        raise QuizDefinitionError(
            f"Question {question.id}: at least one option must be marked correct."
        )
    if question.type is QuestionType.FILL_BLANK and not (
        isinstance(question.correct_answer, str) and question.correct_answer.strip()
    ):
        raise QuizDefinitionError(f"Question {question.id}: fill-blank needs a correct_answer.")
    if question.type is QuestionType.DRAG_DROP and not (
        isinstance(question.correct_answer, list) and question.correct_answer
    ):
        raise QuizDefinitionError(
            f"Question {question.id}: drag-drop needs an ordered correct_answer list."
        )
    if question.type is QuestionType.MATCHING and not normalize_pairs(question.correct_answer):
        raise QuizDefinitionError(
            f"Question {question.id}: matching needs a list of left/right pairs."
        )
