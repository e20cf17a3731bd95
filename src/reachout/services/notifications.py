from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from reachout.clock import SystemClock, system_clock
from reachout.models import Contact, Interaction
from reachout.services.collection import InteractionCollection
from reachout.services.polling import PollingScheduler, PollResult
from reachout.services.status import StatusClassifier

logger = logging.getLogger(__name__)

TOAST_TTL_SECONDS = 5 * 60


class NotificationDedup:
    """Remembers which notification keys were shown recently.

    The whole set is swept at once every ``ttl`` seconds rather than per key,
    so a key stays suppressed for somewhere between ``ttl`` and ``2 * ttl``.
    """

    def __init__(self, ttl: float = TOAST_TTL_SECONDS, clock: SystemClock = system_clock) -> None:
        self.ttl = ttl
        self.clock = clock
        self._shown: set[str] = set()
        self._last_sweep = clock.monotonic()

    def should_notify(self, key: str) -> bool:
        self._maybe_sweep()
        if key in self._shown:
            return False
        self._shown.add(key)
        return True

    def release(self, key: str) -> None:
        """Forget ``key`` so the next ``should_notify`` lets it through."""
        self._shown.discard(key)

    def _maybe_sweep(self) -> None:
        now = self.clock.monotonic()
        if now - self._last_sweep >= self.ttl:
            self.sweep(now)

    def sweep(self, now: float | None = None) -> None:
        self._shown.clear()
        self._last_sweep = self.clock.monotonic() if now is None else now

    def clear(self) -> None:
        self._shown.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._shown

    def __len__(self) -> int:
        return len(self._shown)


def notification_key(kind: str, interaction_id: int) -> str:
    return f"{kind}-{interaction_id}"


@dataclass(frozen=True)
class Notification:
    kind: str  # "overdue" or "due-soon"
    interaction: Interaction
    contact: Contact

    @property
    def key(self) -> str:
        return notification_key(self.kind, self.interaction.id)

    @property
    def title(self) -> str:
        return "Overdue Reminder" if self.kind == "overdue" else "Due Soon"

    @property
    def message(self) -> str:
        due = self.interaction.follow_up_due_date
        when = due.strftime("%b %d, %Y %H:%M") if due else "no due date"
        return f"{self.contact.name}: {self.interaction.type} - {self.interaction.summary} (due {when})"


def _log_sink(notification: Notification) -> None:
    logger.info("%s: %s", notification.title, notification.message)


class ReminderNotifier:
    """Turns scheduler output into deduplicated notifications."""

    def __init__(
        self,
        collection: InteractionCollection,
        dedup: NotificationDedup | None = None,
        sink: Callable[[Notification], None] = _log_sink,
        classifier: StatusClassifier | None = None,
    ) -> None:
        self.collection = collection
        self.classifier = classifier or StatusClassifier()
        self.dedup = dedup or NotificationDedup()
        self.sink = sink
        self._scheduler: PollingScheduler | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self, scheduler: PollingScheduler) -> None:
        self.detach()
        self._scheduler = scheduler
        self._unsubscribe = scheduler.subscribe(self.notify_overdue)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = None
        self._scheduler = None

    def handle_tick(self, result: PollResult) -> None:
        """Tick callback: warns about reminders due within the hour."""
        self.notify_due_soon(result.due_soon + result.due_today)

    def notify_overdue(self, interaction_ids: Iterable[int]) -> list[Notification]:
        return self._deliver("overdue", interaction_ids)

    def notify_due_soon(self, interaction_ids: Iterable[int]) -> list[Notification]:
        ids = []
        for interaction_id in interaction_ids:
            interaction = self.collection.get(interaction_id)
            if interaction is None:
                continue
            if not self.classifier.classify(interaction).is_due_within_1_hour:
                continue
            ids.append(interaction_id)
        return self._deliver("due-soon", ids)

    def _deliver(self, kind: str, interaction_ids: Iterable[int]) -> list[Notification]:
        delivered = []
        for interaction, contact in self.overdue_reminders_data(interaction_ids):
            notification = Notification(kind, interaction, contact)
            if not self.dedup.should_notify(notification.key):
                continue
            try:
                self.sink(notification)
            except Exception:
                logger.exception("Failed to deliver notification %s", notification.key)
                self.dedup.release(notification.key)
                continue
            delivered.append(notification)
        return delivered

    def overdue_reminders_data(self, interaction_ids: Iterable[int]) -> list[tuple[Interaction, Contact]]:
        """Join ids with their interaction and contact, dropping missing ones."""
        pairs = []
        for interaction_id in interaction_ids:
            interaction = self.collection.get(interaction_id)
            contact = self.collection.contact(interaction.contact_id) if interaction else None
            if interaction and contact:
                pairs.append((interaction, contact))
        return pairs

    def mark_done(self, interaction_id: int) -> None:
        if self._scheduler is not None:
            self._scheduler.mark_as_checked(interaction_id)

    def dismiss_all(self) -> None:
        if self._scheduler is not None:
            self._scheduler.clear_recently_overdue()
