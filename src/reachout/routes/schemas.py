from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, Field

from reachout.models import Contact, DeletedItemRecord, Interaction, PriorityRecord, ReminderStatus
from reachout.services.priority import priority_insights


class ContactIn(BaseModel):
    name: str
    company: str = ""
    role: str = ""
    email: str = ""
    phone: str = ""


class InteractionIn(BaseModel):
    contact_id: int
    type: str = "email"
    summary: str
    tags: list[str] = Field(default_factory=list)
    follow_up_required: bool = False
    follow_up_due_date: datetime | None = None


class SnoozeIn(BaseModel):
    new_date: datetime


class DoneIn(BaseModel):
    done: bool = True


def _finite(value: float) -> float | None:
    return None if math.isinf(value) else value


def contact_out(contact: Contact) -> dict:
    return {
        "id": contact.id,
        "name": contact.name,
        "company": contact.company,
        "role": contact.role,
        "email": contact.email,
        "phone": contact.phone,
    }


def interaction_out(interaction: Interaction) -> dict:
    due = interaction.follow_up_due_date
    tags = interaction.tags
    return {
        "id": interaction.id,
        "contact_id": interaction.contact_id,
        "type": interaction.type,
        "summary": interaction.summary,
        "tags": sorted(tags) if not isinstance(tags, str) else [],
        "follow_up_required": interaction.follow_up_required,
        "follow_up_due_date": due.isoformat() if due else None,
        "is_done": interaction.is_done,
        "snooze_count": interaction.snooze_count,
        "created_at": interaction.created_at.isoformat(),
    }


def status_out(status: ReminderStatus) -> dict:
    return {
        "status": status.status.value,
        "is_overdue": status.is_overdue,
        "is_due_soon": status.is_due_soon,
        "is_due_today": status.is_due_today,
        "is_due_within_1_hour": status.is_due_within_1_hour,
        "is_active": status.is_active,
        # infinity is not valid JSON
        "days_until_due": _finite(status.days_until_due),
        "hours_until_due": _finite(status.hours_until_due),
    }


def priority_out(record: PriorityRecord) -> dict:
    factors = record.factors
    return {
        "score": round(record.score, 2),
        "interaction": interaction_out(record.interaction),
        "contact": contact_out(record.contact),
        "status": status_out(record.status),
        "factors": {
            "recency": factors.recency,
            "urgency": factors.urgency,
            "snooze_penalty": factors.snooze_penalty,
            "overdue_multiplier": factors.overdue_multiplier,
            "due_soon_multiplier": factors.due_soon_multiplier,
            "time_multiplier": factors.time_multiplier,
        },
        "insights": priority_insights(record),
    }


def deleted_out(record: DeletedItemRecord) -> dict:
    return {
        "id": record.id,
        "item_type": record.item_type,
        "contact_name": record.contact_name,
        "state": record.state.value,
        "deleted_at": record.deleted_at.isoformat(),
    }
