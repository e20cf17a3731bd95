from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable

from reachout.clock import SystemClock, system_clock
from reachout.models import Interaction
from reachout.services.status import StatusClassifier

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5 * 60  # seconds


@dataclass(frozen=True)
class PollResult:
    checked_at: datetime
    current_overdue: list[int] = field(default_factory=list)
    newly_overdue: list[int] = field(default_factory=list)
    due_soon: list[int] = field(default_factory=list)
    due_today: list[int] = field(default_factory=list)


TickCallback = Callable[[PollResult], None]
OverdueCallback = Callable[[list[int]], None]


class PollingScheduler:
    """Re-evaluates all reminders on a timer and reports which became overdue.

    ``recently_overdue`` accumulates ids from every tick's ``newly_overdue``
    delta until they are acknowledged with ``mark_as_checked`` or
    ``clear_recently_overdue``. An acknowledged id comes back only if it
    leaves the overdue set (snoozed, say) and later becomes overdue again.
    """

    def __init__(
        self,
        source: Callable[[], Iterable[Interaction]],
        classifier: StatusClassifier | None = None,
        interval: float = DEFAULT_INTERVAL,
        clock: SystemClock = system_clock,
    ) -> None:
        self.source = source
        self.clock = clock
        self.classifier = classifier or StatusClassifier(clock=clock)
        self.interval = interval

        self.confirmed_overdue: set[int] = set()
        self.recently_overdue: list[int] = []
        self.due_soon: set[int] = set()
        self.due_today: set[int] = set()
        self.last_checked: datetime | None = None

        self._running = False
        self._task: asyncio.Task | None = None
        self._on_tick: TickCallback | None = None
        self._subscribers: list[OverdueCallback] = []
        # bumped on every stop so a sleeping loop from an earlier start never fires
        self._generation = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def next_check_at(self) -> datetime | None:
        if not self._running or self.last_checked is None:
            return None
        return self.last_checked + timedelta(seconds=self.interval)

    def start(self, interval: float | None = None, on_tick: TickCallback | None = None) -> None:
        """Check once now, then every ``interval`` seconds. No-op if running."""
        if self._running:
            return
        loop = asyncio.get_running_loop()
        if interval is not None:
            self.interval = interval
        self._on_tick = on_tick
        self._running = True
        generation = self._generation
        logger.info("Reminder polling started (every %ss)", self.interval)
        self._tick()
        if generation == self._generation:
            self._task = loop.create_task(self._run(generation))

    def stop(self) -> None:
        if not self._running and self._task is None:
            return
        self._running = False
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.info("Reminder polling stopped")

    def set_interval(self, interval: float) -> None:
        """Change the interval, restarting the timer if polling."""
        if not self._running:
            self.interval = interval
            return
        on_tick = self._on_tick
        self.stop()
        self.start(interval, on_tick)

    def subscribe(self, callback: OverdueCallback) -> Callable[[], None]:
        """Call ``callback(ids)`` whenever a check finds newly overdue reminders."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def _run(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if generation != self._generation or not self._running:
                return
            self._tick()

    def _tick(self) -> None:
        try:
            self.check()
        except Exception:
            logger.exception("Reminder check failed")

    def check(self) -> PollResult:
        now = self.clock.now()
        groups = self.classifier.categorize(self.source(), now)

        current = [i.id for i in groups.overdue]
        newly = StatusClassifier.newly_overdue(current, self.confirmed_overdue)
        result = PollResult(
            checked_at=now,
            current_overdue=current,
            newly_overdue=newly,
            due_soon=[i.id for i in groups.due_soon],
            due_today=[i.id for i in groups.due_today],
        )

        # swap in the new state in one step, no awaits in between
        self.confirmed_overdue = set(current)
        self.recently_overdue = self.recently_overdue + [
            i for i in newly if i not in self.recently_overdue
        ]
        self.due_soon = set(result.due_soon)
        self.due_today = set(result.due_today)
        self.last_checked = now

        if newly:
            logger.info("%d reminder(s) became overdue: %s", len(newly), newly)
        self._notify(result)
        return result

    def _notify(self, result: PollResult) -> None:
        if self._on_tick is not None:
            try:
                self._on_tick(result)
            except Exception:
                logger.exception("Polling tick callback failed")
        if not result.newly_overdue:
            return
        for callback in list(self._subscribers):
            try:
                callback(list(result.newly_overdue))
            except Exception:
                logger.exception("Overdue subscriber %r failed", callback)

    def mark_as_checked(self, interaction_id: int) -> None:
        self.recently_overdue = [i for i in self.recently_overdue if i != interaction_id]

    def clear_recently_overdue(self) -> None:
        self.recently_overdue = []

    def debug_info(self) -> dict:
        next_check_in = 0.0
        if self._running and self.last_checked is not None:
            elapsed = (self.clock.now() - self.last_checked).total_seconds()
            next_check_in = max(0.0, self.interval - elapsed)
        return {
            "is_running": self._running,
            "interval": self.interval,
            "last_checked": self.last_checked,
            "overdue_count": len(self.confirmed_overdue),
            "recently_overdue_count": len(self.recently_overdue),
            "next_check_in": next_check_in,
        }
