"""Countdown timers that drive automatic submission of timed attempts."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
import logging
from threading import Event, Thread
from typing import Protocol

from quiz_engine.constants.engine_constants import TICK_INTERVAL_SECONDS, TIMER_THREAD_NAME

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_ONE_SECOND = timedelta(seconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def remaining_after(balance_seconds: int, anchor: datetime, now: datetime) -> int:
    """Seconds left when ``balance_seconds`` were left at ``anchor``.

    Only whole elapsed seconds are deducted, so the result matches a counter
    decremented once per second since ``anchor``.
    """
    elapsed = max(0, int((now - anchor).total_seconds()))
    return max(0, balance_seconds - elapsed)


def deadline_for(balance_seconds: int, anchor: datetime) -> datetime:
    return anchor + timedelta(seconds=balance_seconds)


def partial_second(anchor: datetime, paused_at: datetime) -> timedelta:
    """Part of a second already used when the countdown was paused.

    Resuming with the anchor moved back by this amount makes the next whole
    second fall due on time instead of restarting the second.
    """
    elapsed = max(timedelta(0), paused_at - anchor)
    return elapsed % _ONE_SECOND


class TimerController:
    """Tracks the remaining time of one attempt.

    The controller does no locking of its own; the engine calls it while
    holding the attempt's lock, including from ``tick``.
    """

    def __init__(
        self,
        on_expire: Callable[[], None],
        on_tick: Callable[[int], None] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._clock = clock
        self._balance: int | None = None
        self._anchor: datetime | None = None
        self._carry = timedelta(0)
        self._running: bool = False
        self._expired: bool = False

    def start(self, remaining_seconds: int | None, anchor: datetime | None = None) -> None:
        """Begin counting down. ``None`` means unlimited: the timer never runs."""
        self._balance = remaining_seconds
        self._expired = False
        self._carry = timedelta(0)
        if remaining_seconds is None:
            self._running = False
            self._anchor = None
            return
        self._anchor = anchor or self._clock()
        self._running = True

    def is_running(self) -> bool:
        return self._running

    def has_expired(self) -> bool:
        return self._expired

    def remaining(self, at: datetime | None = None) -> int | None:
        if self._balance is None:
            return None
        if not self._running or self._anchor is None:
            return self._balance
        return remaining_after(self._balance, self._anchor, at or self._clock())

    def pause(self, at: datetime | None = None) -> int | None:
        """Freeze the countdown and return the captured remaining seconds."""
        at = at or self._clock()
        captured = self.remaining(at)
        if self._running and self._anchor is not None:
            self._carry = partial_second(self._anchor, at)
        self._balance = captured
        self._running = False
        self._anchor = None
        return captured

    def resume(self, at: datetime | None = None) -> None:
        if self._balance is None or self._expired or self._running:
            return
        self._anchor = (at or self._clock()) - self._carry
        self._carry = timedelta(0)
        self._running = True

    def stop(self) -> None:
        self._balance = self.remaining()
        self._running = False
        self._anchor = None

    def tick(self) -> int | None:
        """Publish the remaining time and fire ``on_expire`` once it hits zero.

        If ``on_expire`` raises, the timer stays armed so the next tick retries.
        """
        if not self._running:
            return self.remaining()

        remaining = self.remaining()
        if self._on_tick is not None and remaining is not None:
            self._on_tick(remaining)
        if remaining == 0 and not self._expired:
            self._on_expire()
            self._expired = True
            self.stop()
        return remaining


class Tickable(Protocol):
    def tick(self) -> None: ...


class TimerService(Thread):
    """Background daemon thread that ticks the engine at a fixed interval."""

    def __init__(self, ticker: Tickable, interval_seconds: float = TICK_INTERVAL_SECONDS) -> None:
        super().__init__(name=TIMER_THREAD_NAME, daemon=True)
        self._ticker = ticker
        self._interval = interval_seconds
        self._stop_event = Event()

    def run(self) -> None:
        logger.info("Timer service started (interval %.2fs)", self._interval)
        while not self._stop_event.wait(self._interval):
            try:
                self._ticker.tick()
            except Exception:
                logger.exception("Timer tick failed; retrying on next interval")
        logger.info("Timer service stopped")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
