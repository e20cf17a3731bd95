from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from reachout.clock import SystemClock, system_clock
from reachout.config import Settings
from reachout.services.collection import InteractionCollection
from reachout.services.deletion import OptimisticMutationManager
from reachout.services.notifications import Notification, NotificationDedup, ReminderNotifier
from reachout.services.polling import PollingScheduler
from reachout.services.priority import PriorityScorer
from reachout.services.status import StatusClassifier
from reachout.services.store import InteractionStore

logger = logging.getLogger(__name__)


@dataclass
class ReminderEngine:
    settings: Settings
    store: InteractionStore
    collection: InteractionCollection
    classifier: StatusClassifier
    scorer: PriorityScorer
    scheduler: PollingScheduler
    notifier: ReminderNotifier
    deletions: OptimisticMutationManager

    def reload(self) -> None:
        """Re-read the store, keeping items with a pending deletion hidden."""
        hidden = [r.id for r in self.deletions.deleted_items()]
        self.collection.refresh(self.store, hidden=hidden)

    def start(self) -> None:
        self.scheduler.start(self.settings.poll_interval, self.notifier.handle_tick)

    def stop(self) -> None:
        self.scheduler.stop()


def build_engine(
    settings: Settings,
    sink: Callable[[Notification], None] | None = None,
    clock: SystemClock = system_clock,
) -> ReminderEngine:
    store = InteractionStore(settings.db_path)
    collection = InteractionCollection.from_store(store)
    classifier = StatusClassifier(
        clock=clock,
        cache_ttl=settings.status_cache_ttl,
        due_soon_hours=settings.due_soon_hours,
    )
    scheduler = PollingScheduler(
        collection.interactions, classifier, settings.poll_interval, clock
    )
    notifier_kwargs = {"sink": sink} if sink is not None else {}
    notifier = ReminderNotifier(
        collection,
        NotificationDedup(settings.toast_ttl, clock),
        classifier=classifier,
        **notifier_kwargs,
    )
    notifier.attach(scheduler)
    deletions = OptimisticMutationManager(
        collection,
        store,
        undo_window=settings.undo_window,
        soft_delete_window=settings.soft_delete_window,
        clock=clock,
    )
    logger.debug("Reminder engine ready with %d interactions", len(collection))
    return ReminderEngine(
        settings=settings,
        store=store,
        collection=collection,
        classifier=classifier,
        scorer=PriorityScorer(classifier, clock=clock),
        scheduler=scheduler,
        notifier=notifier,
        deletions=deletions,
    )
