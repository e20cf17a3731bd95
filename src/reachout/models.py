from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

INTERACTION_TYPES = ("email", "phone", "text", "dm", "in_person")


@dataclass
class Contact:
    id: int = 0
    name: str = ""
    company: str = ""
    role: str = ""
    email: str = ""
    phone: str = ""


@dataclass
class Interaction:
    id: int = 0
    contact_id: int = 0
    type: str = "email"  # one of INTERACTION_TYPES
    summary: str = ""
    tags: set[str] = field(default_factory=set)
    follow_up_required: bool = False
    follow_up_due_date: datetime | None = None
    is_done: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    snooze_count: int = 0

    @property
    def is_reminder(self) -> bool:
        return self.follow_up_required and self.follow_up_due_date is not None


class StatusKind(str, Enum):
    DONE = "done"
    OVERDUE = "overdue"
    DUE_SOON = "due-soon"
    DUE_TODAY = "due-today"
    UPCOMING = "upcoming"


@dataclass(frozen=True)
class ReminderStatus:
    status: StatusKind = StatusKind.UPCOMING
    is_overdue: bool = False
    is_due_soon: bool = False
    is_due_today: bool = False
    is_due_within_1_hour: bool = False
    is_active: bool = False
    days_until_due: float = math.inf
    hours_until_due: float = math.inf
    # signed, unclamped; only used for ordering
    seconds_until_due: float = math.inf


@dataclass(frozen=True)
class PriorityFactors:
    recency: float = 0.5
    urgency: float = 0.5
    snooze_penalty: float = 1.0
    overdue_multiplier: float = 1.0
    due_soon_multiplier: float = 1.0
    time_multiplier: float = 1.0


@dataclass(frozen=True)
class PriorityRecord:
    interaction: Interaction
    contact: Contact
    score: float
    factors: PriorityFactors
    status: ReminderStatus

    @property
    def interaction_id(self) -> int:
        return self.interaction.id

    @property
    def contact_id(self) -> int:
        return self.contact.id


class DeletionState(str, Enum):
    SOFT_DELETED = "soft-deleted"
    OPTIMISTIC = "optimistic"
    COMMITTED = "committed"
    REVERTED = "reverted"
    UNDONE = "undone"


@dataclass
class DeletedItemRecord:
    id: int
    snapshot: Interaction
    item_type: str = "interaction"  # "interaction" or "reminder"
    contact_name: str = ""
    deleted_at: datetime = field(default_factory=datetime.now)
    state: DeletionState = DeletionState.OPTIMISTIC
    # monotonic seconds at commit, drives the undo window
    committed_at: float | None = None
