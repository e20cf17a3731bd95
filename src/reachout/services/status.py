from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from reachout.clock import SystemClock, as_local, system_clock
from reachout.models import Interaction, ReminderStatus, StatusKind

logger = logging.getLogger(__name__)

DUE_SOON_HOURS = 24
DUE_WITHIN_1_HOUR = 1
CACHE_TTL_SECONDS = 60.0

_DONE = ReminderStatus(
    status=StatusKind.DONE,
    days_until_due=0,
    hours_until_due=0,
    seconds_until_due=0,
)
_NO_DUE_DATE = ReminderStatus(status=StatusKind.UPCOMING)


@dataclass
class CategorizedReminders:
    overdue: list[Interaction] = field(default_factory=list)
    due_soon: list[Interaction] = field(default_factory=list)
    due_today: list[Interaction] = field(default_factory=list)
    upcoming: list[Interaction] = field(default_factory=list)
    done: list[Interaction] = field(default_factory=list)


@dataclass
class ReminderStats:
    total: int = 0
    overdue: int = 0
    due_soon: int = 0
    due_today: int = 0
    upcoming: int = 0
    done: int = 0


class StatusClassifier:
    """Classifies reminders by due-date pressure.

    Results are memoized per interaction id together with the inputs they
    were computed from (due date, ``is_done``, ``follow_up_required``). An
    entry is reused while those inputs are unchanged and the reference time
    stays within ``cache_ttl`` seconds of the one it was computed for. A change
    to the inputs replaces the id's entry, and ``categorize`` prunes stale
    entries once per TTL.
    """

    def __init__(
        self,
        clock: SystemClock = system_clock,
        cache_ttl: float = CACHE_TTL_SECONDS,
        due_soon_hours: float = DUE_SOON_HOURS,
    ) -> None:
        self.clock = clock
        self.cache_ttl = cache_ttl
        self.due_soon = timedelta(hours=due_soon_hours)
        self._cache: dict[int, tuple[tuple, datetime, ReminderStatus]] = {}
        self._last_prune: datetime | None = None

    def classify(self, interaction: Interaction, now: datetime | None = None) -> ReminderStatus:
        now = as_local(now or self.clock.now())
        inputs = (
            interaction.follow_up_due_date,
            interaction.is_done,
            interaction.follow_up_required,
        )

        cached = self._cache.get(interaction.id)
        if cached is not None:
            cached_inputs, cached_at, status = cached
            if cached_inputs == inputs and abs((now - cached_at).total_seconds()) < self.cache_ttl:
                return status

        status = self._compute(interaction, now)
        self._cache[interaction.id] = (inputs, now, status)
        return status

    def _compute(self, interaction: Interaction, now: datetime) -> ReminderStatus:
        if interaction.is_done:
            return _DONE
        if interaction.follow_up_due_date is None or not interaction.follow_up_required:
            return _NO_DUE_DATE

        due = as_local(interaction.follow_up_due_date)
        gap = due - now
        seconds = gap.total_seconds()
        days = max(0, math.ceil(seconds / 86400))
        hours = max(0.0, seconds / 3600)

        if due <= now:
            return ReminderStatus(
                status=StatusKind.OVERDUE,
                is_overdue=True,
                is_active=True,
                days_until_due=0,
                hours_until_due=0.0,
                seconds_until_due=seconds,
            )

        if gap <= self.due_soon:
            due_today = due.date() == now.date()
            within_hour = gap <= timedelta(hours=DUE_WITHIN_1_HOUR)
            kind = StatusKind.DUE_TODAY if due_today and not within_hour else StatusKind.DUE_SOON
            return ReminderStatus(
                status=kind,
                is_due_soon=True,
                is_due_today=due_today,
                is_due_within_1_hour=within_hour,
                is_active=True,
                days_until_due=days,
                hours_until_due=hours,
                seconds_until_due=seconds,
            )

        return ReminderStatus(
            status=StatusKind.UPCOMING,
            is_active=True,
            days_until_due=days,
            hours_until_due=hours,
            seconds_until_due=seconds,
        )

    def categorize(
        self, interactions: Iterable[Interaction], now: datetime | None = None
    ) -> CategorizedReminders:
        """Bucket interactions by status.

        A record that fails to classify is logged and left out; the rest of
        the batch is still processed.
        """
        now = now or self.clock.now()
        result = CategorizedReminders()
        buckets = {
            StatusKind.OVERDUE: result.overdue,
            StatusKind.DUE_SOON: result.due_soon,
            StatusKind.DUE_TODAY: result.due_today,
            StatusKind.UPCOMING: result.upcoming,
            StatusKind.DONE: result.done,
        }
        for interaction in interactions:
            try:
                status = self.classify(interaction, now)
            except Exception:
                logger.exception("Could not classify interaction %s", interaction.id)
                continue
            buckets[status.status].append(interaction)
        self._maybe_prune(now)
        return result

    def stats(self, interactions: Iterable[Interaction], now: datetime | None = None) -> ReminderStats:
        interactions = list(interactions)
        groups = self.categorize(interactions, now)
        return ReminderStats(
            total=sum(1 for i in interactions if i.is_reminder),
            overdue=len(groups.overdue),
            due_soon=len(groups.due_soon),
            due_today=len(groups.due_today),
            upcoming=len(groups.upcoming),
            done=len(groups.done),
        )

    def overdue_ids(self, interactions: Iterable[Interaction], now: datetime | None = None) -> list[int]:
        return [i.id for i in self.categorize(interactions, now).overdue]

    @staticmethod
    def newly_overdue(current: Iterable[int], previous: Iterable[int]) -> list[int]:
        previous = set(previous)
        return [i for i in current if i not in previous]

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()

    def prune(self, now: datetime | None = None) -> int:
        """Drop entries older than the TTL; returns how many were removed."""
        now = as_local(now or self.clock.now())
        stale = [
            key
            for key, (_, cached_at, _) in self._cache.items()
            if abs((now - cached_at).total_seconds()) >= self.cache_ttl
        ]
        for key in stale:
            del self._cache[key]
        self._last_prune = now
        return len(stale)

    def _maybe_prune(self, now: datetime) -> None:
        now = as_local(now)
        if self._last_prune is None or abs((now - self._last_prune).total_seconds()) >= self.cache_ttl:
            self.prune(now)
