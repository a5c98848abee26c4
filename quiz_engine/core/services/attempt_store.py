"""Persistence port for quiz definitions and attempts, with two adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
import copy
from datetime import datetime, timezone
import json
import os
from pathlib import Path
from threading import Lock

from quiz_engine.core.attempt_codec import attempt_from_dict, attempt_to_dict
from quiz_engine.core.errors import NotFound
from quiz_engine.core.models import ACTIVE_STATUSES, AttemptStatus, QuizAttempt, QuizDefinition
from quiz_engine.core.quiz_loader import load_quiz_from_file, save_quiz_to_file

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _newest_first(attempts: Iterable[QuizAttempt]) -> list[QuizAttempt]:
    return sorted(attempts, key=lambda a: (a.started_at or _EPOCH, a.attempt_number), reverse=True)


class AttemptStore(ABC):
    """Storage contract the engine depends on.

    ``load_attempt`` returns a private copy; changes become visible to other
    readers only through ``save_attempt``.
    """

    @abstractmethod
    def load_quiz_definition(self, quiz_id: str) -> QuizDefinition:
        pass

    @abstractmethod
    def save_quiz_definition(self, quiz: QuizDefinition) -> None:
        pass

    @abstractmethod
    def load_attempt(self, attempt_id: str) -> QuizAttempt:
        pass

    @abstractmethod
    def save_attempt(self, attempt: QuizAttempt) -> None:
        pass

    @abstractmethod
    def list_attempts(self, quiz_id: str, user_id: str | None = None) -> list[QuizAttempt]:
        """Attempts on ``quiz_id`` (optionally for one user), newest first."""

    def count_prior_attempts(
        self,
        user_id: str,
        quiz_id: str,
        statuses: Iterable[AttemptStatus],
    ) -> int:
        wanted = set(statuses)
        return sum(1 for a in self.list_attempts(quiz_id, user_id) if a.status in wanted)

    def find_active_attempt(self, user_id: str, quiz_id: str) -> QuizAttempt | None:
        return next(
            (a for a in self.list_attempts(quiz_id, user_id) if a.status in ACTIVE_STATUSES),
            None,
        )


class InMemoryAttemptStore(AttemptStore):
    """Process-local store, suitable for tests and single-process servers."""

    def __init__(self, quizzes: Iterable[QuizDefinition] = ()) -> None:
        self._lock = Lock()
        self._quizzes: dict[str, QuizDefinition] = {quiz.id: quiz for quiz in quizzes}
        self._attempts: dict[str, QuizAttempt] = {}

    def load_quiz_definition(self, quiz_id: str) -> QuizDefinition:
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
        if quiz is None:
            raise NotFound(f"Quiz {quiz_id} not found.")
        return quiz

    def save_quiz_definition(self, quiz: QuizDefinition) -> None:
        with self._lock:
            self._quizzes[quiz.id] = quiz

    def load_attempt(self, attempt_id: str) -> QuizAttempt:
        with self._lock:
            attempt = self._attempts.get(attempt_id)
            if attempt is None:
                raise NotFound(f"Attempt {attempt_id} not found.")
            return copy.deepcopy(attempt)

    def save_attempt(self, attempt: QuizAttempt) -> None:
        with self._lock:
            self._attempts[attempt.id] = copy.deepcopy(attempt)

    def list_attempts(self, quiz_id: str, user_id: str | None = None) -> list[QuizAttempt]:
        with self._lock:
            matches = [
                copy.deepcopy(a)
                for a in self._attempts.values()
                if a.quiz_id == quiz_id and (user_id is None or a.user_id == user_id)
            ]
        return _newest_first(matches)


class JsonDirectoryAttemptStore(AttemptStore):
    """Keeps one JSON document per quiz and per attempt under ``root``.

    Layout: ``root/quizzes/<quiz_id>.json`` and ``root/attempts/<attempt_id>.json``.
    Attempt writes go through a temporary file and ``os.replace`` so a reader
    never sees a half-written record.
    """

    def __init__(self, root: Path) -> None:
        self._root = root.resolve()
        self._quiz_dir = self._root / "quizzes"
        self._attempt_dir = self._root / "attempts"
        self._quiz_dir.mkdir(parents=True, exist_ok=True)
        self._attempt_dir.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    def load_quiz_definition(self, quiz_id: str) -> QuizDefinition:
        path = self._quiz_dir / f"{quiz_id}.json"
        if not path.exists():
            raise NotFound(f"Quiz {quiz_id} not found.")
        return load_quiz_from_file(path)

    def save_quiz_definition(self, quiz: QuizDefinition) -> None:
        save_quiz_to_file(self._quiz_dir / f"{quiz.id}.json", quiz)

    def load_attempt(self, attempt_id: str) -> QuizAttempt:
        path = self._attempt_dir / f"{attempt_id}.json"
        if not path.exists():
            raise NotFound(f"Attempt {attempt_id} not found.")
        return attempt_from_dict(json.loads(path.read_text(encoding="utf-8")))

    def save_attempt(self, attempt: QuizAttempt) -> None:
        path = self._attempt_dir / f"{attempt.id}.json"
        temp_path = path.with_suffix(".json.tmp")
        document = json.dumps(attempt_to_dict(attempt), indent=2, sort_keys=True)
        with self._lock:
            temp_path.write_text(document, encoding="utf-8")
            os.replace(temp_path, path)

    def list_attempts(self, quiz_id: str, user_id: str | None = None) -> list[QuizAttempt]:
        matches: list[QuizAttempt] = []
        for path in self._attempt_dir.glob("*.json"):
            attempt = attempt_from_dict(json.loads(path.read_text(encoding="utf-8")))
            if attempt.quiz_id == quiz_id and (user_id is None or attempt.user_id == user_id):
                matches.append(attempt)
        return _newest_first(matches)
