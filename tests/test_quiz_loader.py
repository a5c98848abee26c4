import json

import pytest

from quiz_engine.core.errors import QuizDefinitionError
from quiz_engine.core.models import QuestionType
from quiz_engine.core.quiz_loader import load_quiz_from_file, parse_quiz, save_quiz_to_file


def _document(**overrides):
    data = {
        "id": "geo-101",
        "title": "Capitals",
        "settings": {"time_limit_seconds": 600, "shuffle_questions": True},
        "questions": [
            {
                "id": "q1",
                "type": "multiple-choice",
                "text": "Capital of France?",
                "options": [
                    {"id": "a", "text": "Paris", "is_correct": True},
                    {"id": "b", "text": "Lyon"},
                ],
            },
            {"id": "q2", "type": "fill-blank", "correct_answer": "Rome", "points": 2},
            {
                "id": "q3",
                "type": "matching",
                "correct_answer": [{"left": "France", "right": "Paris"}],
            },
            {"id": "q4", "type": "essay", "points": 5},
        ],
    }
    data.update(overrides)
    return data


class TestParseQuiz:
    def test_valid_document(self):
        quiz = parse_quiz(_document())
        assert quiz.id == "geo-101"
        assert quiz.is_published
        assert [q.type for q in quiz.questions] == [
            QuestionType.MULTIPLE_CHOICE,
            QuestionType.FILL_BLANK,
            QuestionType.MATCHING,
            QuestionType.ESSAY,
        ]
        assert quiz.questions[0].points == 1
        assert quiz.settings.time_limit_seconds == 600
        assert quiz.settings.shuffle_questions
        assert quiz.settings.pass_percentage == 70
        assert quiz.settings.allow_pause

    def test_unknown_question_type(self):
        document = _document(questions=[{"id": "q1", "type": "riddle"}])
        with pytest.raises(QuizDefinitionError):
            parse_quiz(document)

    def test_missing_id(self):
        document = _document()
        del document["id"]
        with pytest.raises(QuizDefinitionError):
            parse_quiz(document)

    @pytest.mark.parametrize(
        "question",
        [
            {"id": "q", "type": "multiple-choice", "options": [{"id": "a"}, {"id": "b"}]},
            {
                "id": "q",
                "type": "true-false",
                "options": [{"id": "t", "is_correct": True}, {"id": "f", "is_correct": True}],
            },
            {"id": "q", "type": "multiple-select", "options": [{"id": "a"}]},
            {"id": "q", "type": "fill-blank", "correct_answer": "  "},
            {"id": "q", "type": "drag-drop", "correct_answer": []},
            {"id": "q", "type": "matching", "correct_answer": [{"left": "x"}]},
            {"id": "q", "type": "essay", "points": 0},
            {
                "id": "q",
                "type": "multiple-choice",
                "options": [{"id": "a", "is_correct": True}, {"id": "a"}],
            },
        ],
    )
    def test_invalid_questions(self, question):
        with pytest.raises(QuizDefinitionError):
            parse_quiz(_document(questions=[question]))

    def test_duplicate_question_ids(self):
        essay = {"id": "q", "type": "essay"}
        with pytest.raises(QuizDefinitionError):
            parse_quiz(_document(questions=[essay, essay]))

    @pytest.mark.parametrize(
        "settings",
        [{"time_limit_seconds": -1}, {"max_retakes": -2}, {"pass_percentage": 101}],
    )
    def test_invalid_settings(self, settings):
        with pytest.raises(QuizDefinitionError):
            parse_quiz(_document(settings=settings))


class TestQuizFiles:
    def test_save_then_load(self, tmp_path):
        quiz = parse_quiz(_document())
        path = tmp_path / "nested" / "geo.json"
        save_quiz_to_file(path, quiz)
        assert load_quiz_from_file(path) == quiz

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(QuizDefinitionError):
            load_quiz_from_file(path)

    def test_top_level_must_be_an_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text(json.dumps([1, 2]), encoding="utf-8")
        with pytest.raises(QuizDefinitionError):
            load_quiz_from_file(path)
