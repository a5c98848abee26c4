"""Attempt lifecycle: start, answer, pause, resume, submit and timeout.

Every public operation runs inside a lock owned by the attempt it touches, and
``start`` runs inside a lock owned by the (user, quiz) pair. Timer expiry goes
through the same attempt lock, so a tick racing with ``submit`` finalizes the
attempt once and the other caller sees the stored result.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import partial
import logging
from threading import Lock
from typing import Iterator
from uuid import uuid4

from quiz_engine.core.attempt_codec import normalize_answer
from quiz_engine.core.errors import (
    AttemptFinalized,
    AttemptInProgress,
    GradingNotAllowed,
    InvalidState,
    PauseNotAllowed,
    QuizNotPublished,
    RetakeLimitExceeded,
    UnknownQuestion,
)
from quiz_engine.core.evaluator import evaluate
from quiz_engine.core.models import (
    AnswerRecord,
    AttemptStatus,
    QuizAttempt,
    QuizDefinition,
    QuizSettings,
    TERMINAL_STATUSES,
)
from quiz_engine.core.services.attempt_store import AttemptStore
from quiz_engine.core.services.scoring import (
    AttemptReport,
    QuizStatistics,
    apply_manual_grade,
    apply_summary,
    build_report,
    compute_score,
    summarize_attempts,
)
from quiz_engine.core.services.sequencer import build_order, new_seed
from quiz_engine.core.services.timer_controller import (
    Clock,
    TimerController,
    deadline_for,
    partial_second,
    remaining_after,
    utc_now,
)

logger = logging.getLogger(__name__)

TimerListener = Callable[[str, int], None]

_TRANSITIONS: dict[AttemptStatus, frozenset[AttemptStatus]] = {
    AttemptStatus.NOT_STARTED: frozenset({AttemptStatus.IN_PROGRESS}),
    AttemptStatus.IN_PROGRESS: frozenset(
        {AttemptStatus.PAUSED, AttemptStatus.COMPLETED, AttemptStatus.TIMEOUT}
    ),
    AttemptStatus.PAUSED: frozenset({AttemptStatus.IN_PROGRESS, AttemptStatus.COMPLETED}),
    AttemptStatus.COMPLETED: frozenset(),
    AttemptStatus.TIMEOUT: frozenset(),
}


def retake_limit(settings: QuizSettings) -> int | None:
    """Total number of finalized attempts allowed, ``None`` for unlimited."""
    if not settings.allow_retakes:
        return 1
    if settings.max_retakes > 0:
        return settings.max_retakes
    return None


def _transition(attempt: QuizAttempt, target: AttemptStatus) -> None:
    if target not in _TRANSITIONS[attempt.status]:
        raise InvalidState(
            f"Attempt {attempt.id} cannot move from {attempt.status.value} to {target.value}."
        )
    attempt.status = target


@dataclass(slots=True)
class _KeyedLock:
    lock: Lock = field(default_factory=Lock)
    users: int = 0


class AttemptEngine:
    """Facade over sequencing, evaluation, timing, scoring and storage."""

    def __init__(
        self,
        store: AttemptStore,
        clock: Clock = utc_now,
        seed_factory: Callable[[], int] = new_seed,
        id_factory: Callable[[], str] = lambda: uuid4().hex,
    ) -> None:
        self._store = store
        self._clock = clock
        self._seed_factory = seed_factory
        self._id_factory = id_factory

        self._registry_lock = Lock()
        self._locks: dict[Hashable, _KeyedLock] = {}
        self._timers: dict[str, TimerController] = {}
        self._listeners: dict[str, list[TimerListener]] = {}

    # --- Locking ---

    @contextmanager
    def _locked(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key``; the entry is dropped once nobody holds or awaits it."""
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyedLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def _attempt_lock(self, attempt_id: str):
        return self._locked(("attempt", attempt_id))

    # --- Lifecycle operations ---

    def start(self, user_id: str, quiz_id: str) -> QuizAttempt:
        with self._locked(("start", user_id, quiz_id)):
            quiz = self._store.load_quiz_definition(quiz_id)
            if not quiz.is_published:
                raise QuizNotPublished(f"Quiz {quiz_id} is not published.")

            active = self._store.find_active_attempt(user_id, quiz_id)
            if active is not None:
                # An abandoned timed attempt may have expired without anyone noticing.
                with self._attempt_lock(active.id):
                    active, _ = self._load(active.id)

            self._check_retake_limit(user_id, quiz)
            if active is not None and not active.is_terminal:
                raise AttemptInProgress(
                    f"User {user_id} already has attempt {active.id} open on quiz {quiz_id}."
                )

            seed = self._seed_factory()
            order = build_order(quiz, seed)
            prior_total = self._store.count_prior_attempts(user_id, quiz_id, list(AttemptStatus))
            now = self._clock()
            attempt = QuizAttempt(
                id=self._id_factory(),
                quiz_id=quiz_id,
                user_id=user_id,
                attempt_number=prior_total + 1,
                seed=seed,
                question_order=order.question_order,
                option_orders=order.option_orders,
                started_at=now,
                resumed_at=now,
                time_remaining_seconds=(
                    quiz.settings.time_limit_seconds if quiz.settings.has_time_limit else None
                ),
            )
            _transition(attempt, AttemptStatus.IN_PROGRESS)
            self._store.save_attempt(attempt)
            self._arm_timer(attempt)

        logger.info(
            "Started attempt %s (#%d) for user %s on quiz %s",
            attempt.id,
            attempt.attempt_number,
            user_id,
            quiz_id,
        )
        return attempt

    def submit_answer(
        self,
        attempt_id: str,
        question_id: str,
        answer: object,
        time_spent_seconds: int = 0,
    ) -> QuizAttempt:
        with self._attempt_lock(attempt_id):
            attempt, quiz = self._load(attempt_id)
            self._ensure_not_finalized(attempt)
            if attempt.status is not AttemptStatus.IN_PROGRESS:
                raise InvalidState(f"Attempt {attempt_id} is {attempt.status.value}, not in progress.")

            question = quiz.question_by_id(question_id)
            if question_id not in attempt.question_order or question is None:
                raise UnknownQuestion(f"Question {question_id} is not part of attempt {attempt_id}.")

            answer = normalize_answer(answer)
            evaluation = evaluate(question, answer)
            spent = max(0, int(time_spent_seconds))
            previous = attempt.answers.get(question_id)
            attempt.answers[question_id] = AnswerRecord(
                answer=answer,
                time_spent_seconds=spent,
                points_earned=evaluation.points_earned,
                is_correct=evaluation.is_correct,
                requires_manual_grading=evaluation.requires_manual_grading,
                submitted_at=self._clock(),
            )
            attempt.time_spent_seconds += spent
            self._store.save_attempt(attempt)

        logger.debug(
            "Attempt %s: %s answer for %s (correct=%s)",
            attempt_id,
            "replaced" if previous else "recorded",
            question_id,
            evaluation.is_correct,
        )
        return attempt

    def pause(self, attempt_id: str) -> QuizAttempt:
        with self._attempt_lock(attempt_id):
            attempt, quiz = self._load(attempt_id)
            self._ensure_not_finalized(attempt)
            if not quiz.settings.allow_pause:
                raise PauseNotAllowed(f"Quiz {quiz.id} does not allow pausing.")
            if attempt.status is not AttemptStatus.IN_PROGRESS:
                raise PauseNotAllowed(f"Attempt {attempt_id} is {attempt.status.value}, not in progress.")

            now = self._clock()
            attempt.time_remaining_seconds = self._live_remaining(attempt, now)
            timer = self._timer_for(attempt_id)
            if timer is not None:
                timer.pause(at=now)
            attempt.paused_at = now
            _transition(attempt, AttemptStatus.PAUSED)
            self._store.save_attempt(attempt)

        logger.info("Paused attempt %s with %s seconds left", attempt_id, attempt.time_remaining_seconds)
        return attempt

    def resume(self, attempt_id: str) -> QuizAttempt:
        with self._attempt_lock(attempt_id):
            attempt, _ = self._load(attempt_id)
            self._ensure_not_finalized(attempt)
            if attempt.status is not AttemptStatus.PAUSED:
                raise InvalidState(f"Attempt {attempt_id} is {attempt.status.value}, not paused.")

            now = self._clock()
            carried = (
                partial_second(attempt.resumed_at, attempt.paused_at)
                if attempt.resumed_at is not None and attempt.paused_at is not None
                else timedelta(0)
            )
            attempt.resumed_at = now - carried
            _transition(attempt, AttemptStatus.IN_PROGRESS)
            self._store.save_attempt(attempt)
            self._arm_timer(attempt)

        logger.info("Resumed attempt %s with %s seconds left", attempt_id, attempt.time_remaining_seconds)
        return attempt

    def submit(self, attempt_id: str) -> QuizAttempt:
        """Finalize the attempt; a second call returns the stored result."""
        with self._attempt_lock(attempt_id):
            attempt, quiz = self._load(attempt_id)
            if attempt.is_terminal:
                return attempt
            if attempt.status not in (AttemptStatus.IN_PROGRESS, AttemptStatus.PAUSED):
                raise InvalidState(f"Attempt {attempt_id} has not started.")
            return self._finalize(attempt, quiz, AttemptStatus.COMPLETED)

    def on_timer_expire(self, attempt_id: str) -> QuizAttempt:
        """Finalize a running attempt as timed out. No-op when not running."""
        with self._attempt_lock(attempt_id):
            return self._expire_locked(attempt_id)

    # --- Reads ---

    def get_attempt(self, attempt_id: str) -> QuizAttempt:
        with self._attempt_lock(attempt_id):
            attempt, _ = self._load(attempt_id)
        return attempt

    def list_attempts(self, user_id: str, quiz_id: str) -> list[QuizAttempt]:
        """A user's attempts on a quiz, newest first."""
        self._store.load_quiz_definition(quiz_id)
        return [self._reconciled(a) for a in self._store.list_attempts(quiz_id, user_id)]

    def list_quiz_results(self, quiz_id: str) -> list[QuizAttempt]:
        """Every attempt on a quiz, newest first."""
        self._store.load_quiz_definition(quiz_id)
        return [self._reconciled(a) for a in self._store.list_attempts(quiz_id)]

    def quiz_statistics(self, quiz_id: str) -> QuizStatistics:
        return summarize_attempts(quiz_id, self.list_quiz_results(quiz_id))

    def build_report(self, attempt_id: str) -> AttemptReport:
        with self._attempt_lock(attempt_id):
            attempt, quiz = self._load(attempt_id)
        return build_report(attempt, quiz)

    def grade_answer(
        self,
        attempt_id: str,
        question_id: str,
        points: int,
        reviewer_id: str,
        notes: str = "",
    ) -> QuizAttempt:
        """Apply a reviewer's points to an essay answer of a finalized attempt."""
        with self._attempt_lock(attempt_id):
            attempt, quiz = self._load(attempt_id)
            if not attempt.is_terminal:
                raise GradingNotAllowed(f"Attempt {attempt_id} has not been finalized yet.")
            question = quiz.question_by_id(question_id)
            if question_id not in attempt.question_order or question is None:
                raise UnknownQuestion(f"Question {question_id} is not part of attempt {attempt_id}.")
            apply_manual_grade(attempt, quiz, question, points, reviewer_id, notes, self._clock())
            self._store.save_attempt(attempt)

        logger.info(
            "Reviewer %s awarded %d points on %s of attempt %s",
            reviewer_id,
            points,
            question_id,
            attempt_id,
        )
        return attempt

    # --- Timer subscription ---

    def time_remaining(self, attempt_id: str) -> int | None:
        """Live seconds left, or ``None`` when the quiz is untimed."""
        with self._attempt_lock(attempt_id):
            attempt, _ = self._load(attempt_id)
            return self.remaining_for(attempt)

    def remaining_for(self, attempt: QuizAttempt) -> int | None:
        """Live seconds left on an attempt already loaded by the caller.

        The stored ``time_remaining_seconds`` of a running attempt is the balance
        as of ``resumed_at``; this is the value a client should display.
        """
        return self._live_remaining(attempt, self._clock())

    def subscribe(self, attempt_id: str, listener: TimerListener) -> Callable[[], None]:
        """Call ``listener(attempt_id, seconds_left)`` on every tick.

        Returns a callable that removes the listener.
        """
        with self._registry_lock:
            self._listeners.setdefault(attempt_id, []).append(listener)

        def unsubscribe() -> None:
            with self._registry_lock:
                listeners = self._listeners.get(attempt_id, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(attempt_id, None)

        return unsubscribe

    def tick(self) -> None:
        """Advance every running timer once; expired attempts are finalized."""
        with self._registry_lock:
            attempt_ids = list(self._timers)
        for attempt_id in attempt_ids:
            try:
                with self._attempt_lock(attempt_id):
                    timer = self._timer_for(attempt_id)
                    if timer is not None:
                        timer.tick()
            except Exception:
                logger.exception("Timer expiry for attempt %s failed; will retry", attempt_id)

    # --- Internals ---

    def _load(self, attempt_id: str) -> tuple[QuizAttempt, QuizDefinition]:
        """Read an attempt, finalizing it first if its time ran out unnoticed.

        Caller must hold the attempt lock.
        """
        attempt = self._store.load_attempt(attempt_id)
        quiz = self._store.load_quiz_definition(attempt.quiz_id)
        if attempt.status is AttemptStatus.IN_PROGRESS and attempt.time_remaining_seconds is not None:
            if self._live_remaining(attempt, self._clock()) == 0:
                logger.warning("Attempt %s ran out of time before finalization", attempt_id)
                attempt = self._finalize(attempt, quiz, AttemptStatus.TIMEOUT)
            elif self._timer_for(attempt_id) is None:
                self._arm_timer(attempt)
        return attempt, quiz

    def _reconciled(self, attempt: QuizAttempt) -> QuizAttempt:
        if attempt.status in TERMINAL_STATUSES:
            return attempt
        with self._attempt_lock(attempt.id):
            reloaded, _ = self._load(attempt.id)
        return reloaded

    def _expire_locked(self, attempt_id: str) -> QuizAttempt:
        attempt = self._store.load_attempt(attempt_id)
        if attempt.status is not AttemptStatus.IN_PROGRESS:
            if attempt.is_terminal:
                self._disarm(attempt_id)
            return attempt
        quiz = self._store.load_quiz_definition(attempt.quiz_id)
        return self._finalize(attempt, quiz, AttemptStatus.TIMEOUT)

    def _finalize(
        self,
        attempt: QuizAttempt,
        quiz: QuizDefinition,
        status: AttemptStatus,
    ) -> QuizAttempt:
        now = self._clock()
        if attempt.time_remaining_seconds is not None:
            if status is AttemptStatus.TIMEOUT:
                # Expired attempts close at their deadline, whenever that is noticed.
                if attempt.status is AttemptStatus.IN_PROGRESS and attempt.resumed_at is not None:
                    now = min(now, deadline_for(attempt.time_remaining_seconds, attempt.resumed_at))
                attempt.time_remaining_seconds = 0
            elif attempt.status is AttemptStatus.IN_PROGRESS:
                attempt.time_remaining_seconds = self._live_remaining(attempt, now)

        apply_summary(attempt, compute_score(attempt, quiz))
        attempt.completed_at = now
        _transition(attempt, status)
        self._store.save_attempt(attempt)
        self._disarm(attempt.id)

        logger.info(
            "Attempt %s finalized as %s: %s/%s (%s%%, passed=%s)",
            attempt.id,
            status.value,
            attempt.score,
            attempt.max_score,
            attempt.percentage,
            attempt.passed,
        )
        return attempt

    def _ensure_not_finalized(self, attempt: QuizAttempt) -> None:
        if attempt.is_terminal:
            raise AttemptFinalized(f"Attempt {attempt.id} is already {attempt.status.value}.")

    def _check_retake_limit(self, user_id: str, quiz: QuizDefinition) -> None:
        limit = retake_limit(quiz.settings)
        if limit is None:
            return
        finalized = self._store.count_prior_attempts(user_id, quiz.id, TERMINAL_STATUSES)
        if finalized >= limit:
            raise RetakeLimitExceeded(
                f"User {user_id} has used {finalized} of {limit} attempts on quiz {quiz.id}."
            )

    def _live_remaining(self, attempt: QuizAttempt, now: datetime) -> int | None:
        if attempt.time_remaining_seconds is None:
            return None
        if attempt.status is not AttemptStatus.IN_PROGRESS or attempt.resumed_at is None:
            return attempt.time_remaining_seconds
        return remaining_after(attempt.time_remaining_seconds, attempt.resumed_at, now)

    def _timer_for(self, attempt_id: str) -> TimerController | None:
        with self._registry_lock:
            return self._timers.get(attempt_id)

    def _arm_timer(self, attempt: QuizAttempt) -> None:
        if attempt.time_remaining_seconds is None:
            return
        timer = TimerController(
            on_expire=partial(self._expire_locked, attempt.id),
            on_tick=partial(self._publish, attempt.id),
            clock=self._clock,
        )
        timer.start(attempt.time_remaining_seconds, anchor=attempt.resumed_at)
        with self._registry_lock:
            self._timers[attempt.id] = timer

    def _disarm(self, attempt_id: str) -> None:
        with self._registry_lock:
            self._timers.pop(attempt_id, None)
            self._listeners.pop(attempt_id, None)

    def _publish(self, attempt_id: str, seconds_left: int) -> None:
        with self._registry_lock:
            listeners = list(self._listeners.get(attempt_id, []))
        for listener in listeners:
            try:
                listener(attempt_id, seconds_left)
            except Exception:
                logger.exception("Timer listener for attempt %s failed", attempt_id)
