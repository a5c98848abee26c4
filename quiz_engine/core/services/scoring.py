"""Score aggregation, results reports and per-quiz statistics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from quiz_engine.core.errors import GradingNotAllowed
from quiz_engine.core.evaluator import EMPTY_ANSWER, evaluate
from quiz_engine.core.models import (
    AttemptStatus,
    Question,
    QuestionType,
    QuizAttempt,
    QuizDefinition,
)


@dataclass(frozen=True, slots=True)
class ScoreSummary:
    """Final figures stored on an attempt at finalization."""

    score: int
    max_score: int
    percentage: int
    passed: bool


@dataclass(frozen=True, slots=True)
class QuestionResult:
    """Per-question line of a results report."""

    question_id: str
    question_type: QuestionType
    text: str
    points: int
    points_earned: int
    is_correct: bool
    answered: bool
    answer: object = None
    requires_manual_grading: bool = False
    correct_answer: object = None
    explanation: str | None = None


@dataclass(frozen=True, slots=True)
class AttemptReport:
    """Snapshot returned to a learner after an attempt is finalized."""

    attempt_id: str
    quiz_id: str
    status: AttemptStatus
    score: int | None
    max_score: int | None
    percentage: int | None
    passed: bool | None
    pending_review: bool
    time_spent_seconds: int
    questions: list[QuestionResult]


@dataclass(frozen=True, slots=True)
class QuizStatistics:
    """Aggregate figures over every finalized attempt of a quiz."""

    quiz_id: str
    attempt_count: int
    completion_count: int
    timeout_count: int
    pass_count: int
    average_percentage: int


def rounded_percentage(score: int, max_score: int) -> int:
    """Percentage rounded half up; 0 when there is nothing to score."""
    if max_score <= 0:
        return 0
    return (score * 200 + max_score) // (2 * max_score)


def compute_score(attempt: QuizAttempt, quiz: QuizDefinition) -> ScoreSummary:
    """Aggregate points over every question of the attempt.

    Unanswered questions are evaluated as an empty answer, which never earns
    points. Questions no longer present in the definition are ignored.
    """
    questions = quiz.questions_by_id()
    score = 0
    max_score = 0
    for question_id in attempt.question_order:
        question = questions.get(question_id)
        if question is None:
            continue
        max_score += question.points
        record = attempt.answers.get(question_id)
        if record is None:
            score += evaluate(question, EMPTY_ANSWER).points_earned
        else:
            score += record.points_earned

    percentage = rounded_percentage(score, max_score)
    return ScoreSummary(
        score=score,
        max_score=max_score,
        percentage=percentage,
        passed=percentage >= quiz.settings.pass_percentage,
    )


def apply_summary(attempt: QuizAttempt, summary: ScoreSummary) -> None:
    attempt.score = summary.score
    attempt.max_score = summary.max_score
    attempt.percentage = summary.percentage
    attempt.passed = summary.passed


def apply_manual_grade(
    attempt: QuizAttempt,
    quiz: QuizDefinition,
    question: Question,
    points: int,
    reviewer_id: str,
    notes: str,
    graded_at: datetime,
) -> None:
    """Award ``points`` to a finalized essay answer and adjust the stored score.

    The stored score moves by the difference between the new and the previous
    award; it is not rebuilt from the answers, so other questions keep the
    points they were finalized with.
    """
    if question.type is not QuestionType.ESSAY:
        raise GradingNotAllowed(f"Question {question.id} is graded automatically.")
    record = attempt.answers.get(question.id)
    if record is None:
        raise GradingNotAllowed(f"Question {question.id} was not answered.")
    if not 0 <= points <= question.points:
        raise GradingNotAllowed(
            f"Points must be between 0 and {question.points} for question {question.id}."
        )

    delta = points - record.points_earned
    record.points_earned = points
    record.is_correct = points == question.points
    record.requires_manual_grading = False

    score = (attempt.score or 0) + delta
    max_score = attempt.max_score or 0
    percentage = rounded_percentage(score, max_score)
    apply_summary(
        attempt,
        ScoreSummary(
            score=score,
            max_score=max_score,
            percentage=percentage,
            passed=percentage >= quiz.settings.pass_percentage,
        ),
    )

    attempt.reviewed = not attempt.pending_review
    attempt.reviewed_by = reviewer_id
    attempt.reviewed_at = graded_at
    if notes:
        attempt.review_notes = notes


def _correct_answer_for(question: Question) -> object:
    if question.type in (
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.TRUE_FALSE,
    ):
        correct = question.correct_option_ids()
        return correct[0] if correct else None
    if question.type is QuestionType.MULTIPLE_SELECT:
        return question.correct_option_ids()
    return question.correct_answer


def build_report(attempt: QuizAttempt, quiz: QuizDefinition) -> AttemptReport:
    """Assemble the results view, honouring the quiz's display settings."""
    settings = quiz.settings
    results: list[QuestionResult] = []
    if settings.show_results:
        questions = quiz.questions_by_id()
        for question_id in attempt.question_order:
            question = questions.get(question_id)
            if question is None:
                continue
            record = attempt.answers.get(question_id)
            results.append(
                QuestionResult(
                    question_id=question.id,
                    question_type=question.type,
                    text=question.text,
                    points=question.points,
                    points_earned=record.points_earned if record else 0,
                    is_correct=record.is_correct if record else False,
                    answered=record is not None,
                    answer=record.answer if record else None,
                    requires_manual_grading=record.requires_manual_grading if record else False,
                    correct_answer=(
                        _correct_answer_for(question) if settings.show_correct_answers else None
                    ),
                    explanation=question.explanation if settings.show_explanation else None,
                )
            )

    return AttemptReport(
        attempt_id=attempt.id,
        quiz_id=attempt.quiz_id,
        status=attempt.status,
        score=attempt.score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
        passed=attempt.passed,
        pending_review=attempt.pending_review,
        time_spent_seconds=attempt.time_spent_seconds,
        questions=results,
    )


def summarize_attempts(quiz_id: str, attempts: list[QuizAttempt]) -> QuizStatistics:
    finalized = [attempt for attempt in attempts if attempt.is_terminal]
    percentages = [attempt.percentage or 0 for attempt in finalized]
    average = rounded_percentage(sum(percentages), 100 * len(percentages)) if percentages else 0
    return QuizStatistics(
        quiz_id=quiz_id,
        attempt_count=len(attempts),
        completion_count=sum(1 for a in finalized if a.status is AttemptStatus.COMPLETED),
        timeout_count=sum(1 for a in finalized if a.status is AttemptStatus.TIMEOUT),
        pass_count=sum(1 for a in finalized if a.passed),
        average_percentage=average,
    )
