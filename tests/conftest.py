from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from reachout.db import init_db
from reachout.models import Contact, Interaction

NOW = datetime(2025, 3, 12, 10, 0, 0)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = NOW) -> None:
        self.current = start
        self.mono = 1000.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.mono

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.mono += seconds


class FakeBackend:
    """Stand-in for the store's async ``delete`` / ``create``.

    Set ``gate`` to hold calls until the test releases them, and
    ``fail_delete`` / ``fail_create`` to make the next calls raise.
    """

    def __init__(self) -> None:
        self.deleted: list[int] = []
        self.created: list[Interaction] = []
        self.fail_delete = False
        self.fail_create = False
        self.gate: asyncio.Event | None = None

    async def delete(self, interaction_id: int) -> None:
        self.deleted.append(interaction_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_delete:
            raise ConnectionError("backend unavailable")

    async def create(self, snapshot: Interaction) -> int:
        self.created.append(snapshot)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_create:
            raise ConnectionError("backend unavailable")
        return snapshot.id


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "test.db"
    init_db(path)
    return path


@pytest.fixture
def alice():
    return Contact(id=1, name="Alice", company="Acme", role="Recruiter")


def make_reminder(id: int = 1, due: datetime | None = None, **kwargs) -> Interaction:
    kwargs.setdefault("contact_id", 1)
    kwargs.setdefault("summary", f"Follow up #{id}")
    kwargs.setdefault("created_at", NOW - timedelta(days=1))
    return Interaction(
        id=id,
        follow_up_required=due is not None,
        follow_up_due_date=due,
        **kwargs,
    )
