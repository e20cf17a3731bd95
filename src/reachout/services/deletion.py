from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from reachout.clock import SystemClock, system_clock
from reachout.errors import ConcurrencyError, NetworkError, NotFoundError, UndoWindowExpired
from reachout.models import DeletedItemRecord, DeletionState, Interaction
from reachout.services.collection import InteractionCollection

logger = logging.getLogger(__name__)

UNDO_WINDOW_SECONDS = 10.0
SOFT_DELETE_WINDOW_SECONDS = 30.0

# Allowed lifecycle moves; None is "no record yet". A record that reaches
# REVERTED or UNDONE is dropped, its item is back in the active collection.
TRANSITIONS: dict[DeletionState | None, set[DeletionState]] = {
    None: {DeletionState.SOFT_DELETED, DeletionState.OPTIMISTIC},
    DeletionState.SOFT_DELETED: {DeletionState.OPTIMISTIC, DeletionState.REVERTED},
    DeletionState.OPTIMISTIC: {DeletionState.COMMITTED, DeletionState.REVERTED},
    DeletionState.COMMITTED: {DeletionState.UNDONE},
}


def _transition(record: DeletedItemRecord, state: DeletionState, current: DeletionState | None) -> None:
    if state not in TRANSITIONS.get(current, set()):
        raise ConcurrencyError(
            f"Item {record.id} cannot move from {current.value if current else 'active'} "
            f"to {state.value}"
        )
    record.state = state


class OptimisticMutationManager:
    """Delete-with-undo against a backend that may fail.

    Two independent timers are involved:

    * the soft-delete window: ``soft_delete`` only hides the item locally and
      calls ``optimistic_delete`` itself once ``soft_delete_window`` elapses,
      unless the caller commits or reverts first;
    * the undo window: after the backend delete succeeds the item can be
      restored with ``undo`` for ``undo_window`` seconds, after which the
      record is dropped.

    ``backend`` needs two coroutines, ``delete(id)`` and
    ``create(snapshot) -> id``. At most one of them is in flight per id.
    """

    def __init__(
        self,
        collection: InteractionCollection,
        backend,
        undo_window: float = UNDO_WINDOW_SECONDS,
        soft_delete_window: float = SOFT_DELETE_WINDOW_SECONDS,
        clock: SystemClock = system_clock,
    ) -> None:
        self.collection = collection
        self.backend = backend
        self.undo_window = undo_window
        self.soft_delete_window = soft_delete_window
        self.clock = clock

        self._records: dict[int, DeletedItemRecord] = {}
        self._pending: dict[int, asyncio.Future] = {}
        self._undo_timers: dict[int, asyncio.TimerHandle] = {}
        self._soft_timers: dict[int, asyncio.TimerHandle] = {}
        self._background: set[asyncio.Task] = set()

    # -- queries ----------------------------------------------------------

    def is_pending_or_deleted(self, interaction_id: int) -> bool:
        return interaction_id in self._pending or interaction_id in self._records

    def get(self, interaction_id: int) -> DeletedItemRecord | None:
        return self._records.get(interaction_id)

    def deleted_items(self) -> list[DeletedItemRecord]:
        return list(self._records.values())

    def soft_deleted_items(self) -> list[DeletedItemRecord]:
        return [r for r in self._records.values() if r.state == DeletionState.SOFT_DELETED]

    @property
    def has_pending_operations(self) -> bool:
        return bool(self._pending)

    # -- soft delete ------------------------------------------------------

    def soft_delete(self, item: Interaction, contact_name: str = "") -> DeletedItemRecord:
        """Hide ``item`` locally; the backend is not called yet."""
        self._check_idle(item.id)
        record = self._new_record(item, contact_name)
        _transition(record, DeletionState.SOFT_DELETED, None)
        self._records[item.id] = record
        self.collection.remove(item.id)

        loop = asyncio.get_running_loop()
        self._soft_timers[item.id] = loop.call_later(
            self.soft_delete_window, self._auto_commit, item.id
        )
        logger.info("Soft-deleted interaction %s", item.id)
        return record

    async def commit_soft_delete(self, interaction_id: int) -> DeletedItemRecord:
        record = self._records.get(interaction_id)
        if record is None or record.state != DeletionState.SOFT_DELETED:
            raise NotFoundError(f"Interaction {interaction_id} is not soft-deleted")
        return await self.optimistic_delete(record.snapshot, record.contact_name)

    def revert_soft_delete(self, interaction_id: int) -> Interaction:
        record = self._records.get(interaction_id)
        if record is None or record.state != DeletionState.SOFT_DELETED:
            raise NotFoundError(f"Interaction {interaction_id} is not soft-deleted")
        self._cancel(self._soft_timers, interaction_id)
        _transition(record, DeletionState.REVERTED, DeletionState.SOFT_DELETED)
        del self._records[interaction_id]
        self.collection.add(record.snapshot)
        logger.info("Reverted soft delete of interaction %s", interaction_id)
        return record.snapshot

    def _auto_commit(self, interaction_id: int) -> None:
        self._soft_timers.pop(interaction_id, None)
        record = self._records.get(interaction_id)
        if record is None or record.state != DeletionState.SOFT_DELETED:
            return
        logger.info("Soft-delete window elapsed for interaction %s, committing", interaction_id)
        task = asyncio.get_running_loop().create_task(self.commit_soft_delete(interaction_id))
        self._background.add(task)
        task.add_done_callback(self._finish_background)

    def _finish_background(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Automatic commit failed: %s", exc)

    # -- optimistic delete ------------------------------------------------

    async def optimistic_delete(self, item: Interaction, contact_name: str = "") -> DeletedItemRecord:
        """Remove ``item`` now and delete it on the backend.

        On backend failure the item is written back with ``create`` and put
        back into the collection, then a ``NetworkError`` is raised.
        """
        interaction_id = item.id
        if interaction_id in self._pending:
            raise ConcurrencyError(f"An operation on interaction {interaction_id} is in flight")

        record = self._records.get(interaction_id)
        if record is None:
            record = self._new_record(item, contact_name)
            _transition(record, DeletionState.OPTIMISTIC, None)
        else:
            _transition(record, DeletionState.OPTIMISTIC, record.state)
            self._cancel(self._soft_timers, interaction_id)
        self._records[interaction_id] = record
        self.collection.remove(interaction_id)

        future = asyncio.ensure_future(self.backend.delete(interaction_id))
        self._pending[interaction_id] = future
        try:
            try:
                await future
            except Exception as exc:
                logger.warning("Delete of interaction %s failed, reverting: %s", interaction_id, exc)
                await self._revert(record)
                if isinstance(exc, NetworkError):
                    raise
                raise NetworkError(f"Failed to delete interaction {interaction_id}") from exc
        finally:
            self._pending.pop(interaction_id, None)

        _transition(record, DeletionState.COMMITTED, DeletionState.OPTIMISTIC)
        record.committed_at = self.clock.monotonic()
        self._arm_expiry(record, self.undo_window)
        logger.info("Deleted interaction %s", interaction_id)
        return record

    async def _revert(self, record: DeletedItemRecord) -> None:
        _transition(record, DeletionState.REVERTED, DeletionState.OPTIMISTIC)
        self._records.pop(record.id, None)
        restored = record.snapshot
        try:
            new_id = await self.backend.create(record.snapshot)
        except Exception:
            logger.exception("Could not write back interaction %s after failed delete", record.id)
        else:
            if new_id and new_id != restored.id:
                restored = replace(restored, id=new_id)
        self.collection.add(restored)

    def _arm_expiry(self, record: DeletedItemRecord, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._undo_timers[record.id] = loop.call_later(delay, self._expire, record.id, record)

    def _rearm_after_failed_undo(self, record: DeletedItemRecord) -> None:
        if record.id in self._undo_timers:
            return
        # the expiry timer fired while the restore was in flight
        remaining = self.undo_window - (self.clock.monotonic() - record.committed_at)
        if remaining > 0:
            self._arm_expiry(record, remaining)
        elif self._records.get(record.id) is record:
            del self._records[record.id]
            logger.debug("Undo window closed for interaction %s", record.id)

    def _expire(self, interaction_id: int, record: DeletedItemRecord) -> None:
        self._undo_timers.pop(interaction_id, None)
        if interaction_id in self._pending:
            # an undo is in flight and will settle the record itself
            return
        if self._records.get(interaction_id) is record and record.state == DeletionState.COMMITTED:
            del self._records[interaction_id]
            logger.debug("Undo window closed for interaction %s", interaction_id)

    # -- undo -------------------------------------------------------------

    async def undo(self, interaction_id: int) -> Interaction:
        """Restore a deleted item.

        Soft-deleted items are restored locally. Committed items are written
        back with ``create`` while the undo window is open; a failed write
        keeps the undo offer and raises a retryable ``NetworkError``.
        """
        if interaction_id in self._pending:
            raise ConcurrencyError(f"An operation on interaction {interaction_id} is in flight")
        record = self._records.get(interaction_id)
        if record is None:
            raise NotFoundError(f"Interaction {interaction_id} has nothing to undo")
        if record.state == DeletionState.SOFT_DELETED:
            return self.revert_soft_delete(interaction_id)
        if record.state != DeletionState.COMMITTED:
            raise ConcurrencyError(f"Interaction {interaction_id} is {record.state.value}")
        if self.clock.monotonic() - record.committed_at > self.undo_window:
            self._cancel(self._undo_timers, interaction_id)
            del self._records[interaction_id]
            raise UndoWindowExpired(f"Undo window for interaction {interaction_id} has closed")

        future = asyncio.ensure_future(self.backend.create(record.snapshot))
        self._pending[interaction_id] = future
        try:
            new_id = await future
        except Exception as exc:
            logger.warning("Restore of interaction %s failed: %s", interaction_id, exc)
            self._rearm_after_failed_undo(record)
            raise NetworkError(
                f"Failed to restore interaction {interaction_id}", retryable=True
            ) from exc
        finally:
            self._pending.pop(interaction_id, None)

        _transition(record, DeletionState.UNDONE, DeletionState.COMMITTED)
        self._cancel(self._undo_timers, interaction_id)
        self._records.pop(interaction_id, None)
        restored = record.snapshot
        if new_id and new_id != restored.id:
            restored = replace(restored, id=new_id)
        self.collection.add(restored)
        logger.info("Restored interaction %s", restored.id)
        return restored

    # -- housekeeping -----------------------------------------------------

    def clear(self) -> None:
        """Forget all records and cancel their timers."""
        for timers in (self._undo_timers, self._soft_timers):
            for handle in timers.values():
                handle.cancel()
            timers.clear()
        self._records.clear()

    def _check_idle(self, interaction_id: int) -> None:
        if self.is_pending_or_deleted(interaction_id):
            raise ConcurrencyError(f"Interaction {interaction_id} is already being deleted")

    def _new_record(self, item: Interaction, contact_name: str) -> DeletedItemRecord:
        return DeletedItemRecord(
            id=item.id,
            snapshot=item,
            item_type="reminder" if item.is_reminder else "interaction",
            contact_name=contact_name,
            deleted_at=self.clock.now(),
            state=DeletionState.OPTIMISTIC,
        )

    @staticmethod
    def _cancel(timers: dict[int, asyncio.TimerHandle], interaction_id: int) -> None:
        handle = timers.pop(interaction_id, None)
        if handle is not None:
            handle.cancel()
