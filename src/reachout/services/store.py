from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from reachout.clock import as_local
from reachout.db import get_db
from reachout.errors import NetworkError, NotFoundError, ValidationError
from reachout.models import INTERACTION_TYPES, Contact, Interaction

logger = logging.getLogger(__name__)


def _parse_datetime(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return as_local(datetime.fromisoformat(raw.replace("Z", "+00:00")))


def _load_tags(raw: str) -> set[str] | str:
    """Decode the JSON tag column; malformed data is passed through untouched."""
    try:
        tags = json.loads(raw or "[]")
    except ValueError:
        logger.warning("Interaction has malformed tags: %r", raw)
        return raw
    if isinstance(tags, list) and all(isinstance(t, str) for t in tags):
        return set(tags)
    return raw


def _dump_tags(tags) -> str:
    if isinstance(tags, str):
        return tags
    return json.dumps(sorted(tags))


def row_to_interaction(row: sqlite3.Row) -> Interaction:
    return Interaction(
        id=row["id"],
        contact_id=row["contact_id"],
        type=row["type"],
        summary=row["summary"],
        tags=_load_tags(row["tags"]),
        follow_up_required=bool(row["follow_up_required"]),
        follow_up_due_date=_parse_datetime(row["follow_up_due_date"]),
        is_done=bool(row["is_done"]),
        created_at=_parse_datetime(row["created_at"]) or datetime.now(),
        snooze_count=row["snooze_count"],
    )


def row_to_contact(row: sqlite3.Row) -> Contact:
    return Contact(
        id=row["id"],
        name=row["name"],
        company=row["company"],
        role=row["role"],
        email=row["email"],
        phone=row["phone"],
    )


class InteractionStore:
    """SQLite persistence for contacts and interactions.

    ``delete`` and ``create`` are the only writes the reminder engine issues
    on its own; both are coroutines so callers treat them like remote calls
    that may fail.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path

    # -- contacts ---------------------------------------------------------

    def list_contacts(self) -> list[Contact]:
        with get_db(self.db_path) as db:
            rows = db.execute("SELECT * FROM contacts ORDER BY name").fetchall()
        return [row_to_contact(r) for r in rows]

    def get_contact(self, contact_id: int) -> Contact:
        with get_db(self.db_path) as db:
            row = db.execute(
                "SELECT * FROM contacts WHERE id = ?", (contact_id,)
            ).fetchone()
        if not row:
            raise NotFoundError(f"Contact {contact_id} not found")
        return row_to_contact(row)

    def add_contact(self, contact: Contact) -> Contact:
        if not contact.name.strip():
            raise ValidationError("Contact name is required")
        with get_db(self.db_path) as db:
            cur = db.execute(
                """INSERT INTO contacts (name, company, role, email, phone)
                   VALUES (?, ?, ?, ?, ?)""",
                (contact.name, contact.company, contact.role, contact.email, contact.phone),
            )
            contact_id = cur.lastrowid
        return self.get_contact(contact_id)

    # -- interactions -----------------------------------------------------

    def list_interactions(self) -> list[Interaction]:
        with get_db(self.db_path) as db:
            rows = db.execute(
                "SELECT * FROM interactions ORDER BY created_at, id"
            ).fetchall()
        return [row_to_interaction(r) for r in rows]

    def get_interaction(self, interaction_id: int) -> Interaction:
        with get_db(self.db_path) as db:
            row = db.execute(
                "SELECT * FROM interactions WHERE id = ?", (interaction_id,)
            ).fetchone()
        if not row:
            raise NotFoundError(f"Interaction {interaction_id} not found")
        return row_to_interaction(row)

    def add_interaction(self, interaction: Interaction) -> Interaction:
        if interaction.type not in INTERACTION_TYPES:
            raise ValidationError(f"Unknown interaction type: {interaction.type!r}")
        if not interaction.summary.strip():
            raise ValidationError("Summary is required")
        self.get_contact(interaction.contact_id)
        with get_db(self.db_path) as db:
            cur = db.execute(
                """INSERT INTO interactions
                   (contact_id, type, summary, tags, follow_up_required,
                    follow_up_due_date, is_done, snooze_count, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                self._values(interaction),
            )
            interaction_id = cur.lastrowid
        return self.get_interaction(interaction_id)

    def snooze(self, interaction_id: int, new_due_date: datetime) -> Interaction:
        """Push the due date forward and count the snooze."""
        with get_db(self.db_path) as db:
            cur = db.execute(
                """UPDATE interactions
                   SET follow_up_due_date = ?, snooze_count = snooze_count + 1
                   WHERE id = ?""",
                (as_local(new_due_date).isoformat(), interaction_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Interaction {interaction_id} not found")
        return self.get_interaction(interaction_id)

    def mark_done(self, interaction_id: int, done: bool = True) -> Interaction:
        with get_db(self.db_path) as db:
            cur = db.execute(
                "UPDATE interactions SET is_done = ? WHERE id = ?",
                (int(done), interaction_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Interaction {interaction_id} not found")
        return self.get_interaction(interaction_id)

    async def delete(self, interaction_id: int) -> None:
        try:
            with get_db(self.db_path) as db:
                cur = db.execute(
                    "DELETE FROM interactions WHERE id = ?", (interaction_id,)
                )
        except sqlite3.Error as exc:
            raise NetworkError(f"Failed to delete interaction {interaction_id}") from exc
        if cur.rowcount == 0:
            raise NotFoundError(f"Interaction {interaction_id} not found")

    async def create(self, snapshot: Interaction) -> int:
        """Write ``snapshot`` back, keeping its id when it has one."""
        try:
            with get_db(self.db_path) as db:
                if snapshot.id:
                    cur = db.execute(
                        """INSERT OR REPLACE INTO interactions
                           (id, contact_id, type, summary, tags, follow_up_required,
                            follow_up_due_date, is_done, snooze_count, created_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                        (snapshot.id, *self._values(snapshot)),
                    )
                else:
                    cur = db.execute(
                        """INSERT INTO interactions
                           (contact_id, type, summary, tags, follow_up_required,
                            follow_up_due_date, is_done, snooze_count, created_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                        self._values(snapshot),
                    )
        except sqlite3.Error as exc:
            raise NetworkError("Failed to restore interaction") from exc
        return cur.lastrowid

    @staticmethod
    def _values(interaction: Interaction) -> tuple:
        due = interaction.follow_up_due_date
        return (
            interaction.contact_id,
            interaction.type,
            interaction.summary,
            _dump_tags(interaction.tags),
            int(interaction.follow_up_required),
            as_local(due).isoformat() if due else None,
            int(interaction.is_done),
            interaction.snooze_count,
            interaction.created_at.isoformat(sep=" ", timespec="seconds"),
        )
