from __future__ import annotations

from datetime import datetime

import pytest

from reachout.db import get_db
from reachout.errors import NotFoundError, ValidationError
from reachout.models import Contact, Interaction
from reachout.services.store import InteractionStore


@pytest.fixture
def store(db_path):
    return InteractionStore(db_path)


@pytest.fixture
def contact(store):
    return store.add_contact(Contact(name="Bob", company="Initech", role="Hiring manager"))


def test_schema_creation(db_path):
    with get_db(db_path) as db:
        tables = db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
    names = [t["name"] for t in tables]
    assert "contacts" in names
    assert "interactions" in names


def test_interaction_roundtrip(store, contact):
    due = datetime(2025, 4, 1, 9, 30)
    created = store.add_interaction(
        Interaction(
            contact_id=contact.id,
            type="phone",
            summary="Screening call",
            tags={"interview", "urgent"},
            follow_up_required=True,
            follow_up_due_date=due,
        )
    )
    assert created.id > 0
    assert created.tags == {"interview", "urgent"}
    assert created.follow_up_due_date == due
    assert created.is_reminder
    assert store.list_interactions() == [created]


def test_add_interaction_validates(store, contact):
    with pytest.raises(ValidationError):
        store.add_interaction(Interaction(contact_id=contact.id, type="fax", summary="x"))
    with pytest.raises(ValidationError):
        store.add_interaction(Interaction(contact_id=contact.id, summary="  "))
    with pytest.raises(NotFoundError):
        store.add_interaction(Interaction(contact_id=999, summary="Ghost"))


def test_snooze_counts(store, contact):
    interaction = store.add_interaction(
        Interaction(contact_id=contact.id, summary="Send portfolio", follow_up_required=True,
                    follow_up_due_date=datetime(2025, 4, 1))
    )
    store.snooze(interaction.id, datetime(2025, 4, 3))
    snoozed = store.snooze(interaction.id, datetime(2025, 4, 5))
    assert snoozed.snooze_count == 2
    assert snoozed.follow_up_due_date == datetime(2025, 4, 5)
    with pytest.raises(NotFoundError):
        store.snooze(999, datetime(2025, 4, 5))


def test_mark_done(store, contact):
    interaction = store.add_interaction(Interaction(contact_id=contact.id, summary="Thank-you note"))
    assert store.mark_done(interaction.id).is_done
    assert not store.mark_done(interaction.id, False).is_done


@pytest.mark.asyncio
async def test_delete_then_create_keeps_id(store, contact):
    interaction = store.add_interaction(Interaction(contact_id=contact.id, summary="Intro email"))
    await store.delete(interaction.id)
    with pytest.raises(NotFoundError):
        store.get_interaction(interaction.id)

    new_id = await store.create(interaction)
    assert new_id == interaction.id
    assert store.get_interaction(new_id).summary == "Intro email"


@pytest.mark.asyncio
async def test_delete_missing_interaction(store):
    with pytest.raises(NotFoundError):
        await store.delete(12345)


def test_malformed_tags_survive_loading(store, contact, db_path):
    with get_db(db_path) as db:
        db.execute(
            "INSERT INTO interactions (contact_id, type, summary, tags) VALUES (?, ?, ?, ?)",
            (contact.id, "email", "Broken tags", "{oops"),
        )
    [interaction] = store.list_interactions()
    assert interaction.tags == "{oops"


def test_cascade_delete_interactions_from_contact(store, contact, db_path):
    store.add_interaction(Interaction(contact_id=contact.id, summary="Call Bob"))

    with get_db(db_path) as db:
        db.execute("DELETE FROM contacts WHERE id = ?", (contact.id,))

    assert store.list_interactions() == []
