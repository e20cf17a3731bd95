from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable

from reachout.clock import SystemClock, as_local, system_clock
from reachout.errors import NotFoundError, ValidationError
from reachout.models import (
    Contact,
    Interaction,
    PriorityFactors,
    PriorityRecord,
    ReminderStatus,
)
from reachout.services.status import StatusClassifier

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 0.5
HIGH_PRIORITY = 7.0
MEDIUM_PRIORITY = 4.0

SCENARIO_BOOSTS = {
    "interview": 1.5,
    "application": 1.3,
    "networking": 1.2,
    "urgent": 2.0,
}


def _default_type_weights() -> dict[str, float]:
    return {
        "email": 0.8,
        "phone": 0.9,
        "text": 0.6,
        "dm": 0.7,
        "in_person": 1.0,
    }


def _default_tag_weights() -> dict[str, float]:
    return {
        "urgent": 1.0,
        "high_priority": 0.9,
        "follow_up": 0.8,
        "interview": 0.95,
        "application": 0.7,
        "networking": 0.6,
        "casual": 0.4,
    }


@dataclass
class UrgencyConfig:
    type_weights: dict[str, float] = field(default_factory=_default_type_weights)
    tag_weights: dict[str, float] = field(default_factory=_default_tag_weights)
    recency_decay_days: float = 7.0
    snooze_penalty: float = 0.2  # each snooze costs 20%
    overdue_multiplier: float = 2.0
    due_soon_multiplier: float = 1.5


DEFAULT_URGENCY_CONFIG = UrgencyConfig()


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _parse_tags(tags) -> list[str]:
    if tags is None:
        return []
    if isinstance(tags, str):
        try:
            tags = json.loads(tags or "[]")
        except ValueError as exc:
            raise ValidationError(f"Tags are not valid JSON: {tags!r}") from exc
        if not isinstance(tags, list):
            raise ValidationError(f"Tags must be a list, got {type(tags).__name__}")
    try:
        tags = list(tags)
    except TypeError as exc:
        raise ValidationError(f"Tags are not iterable: {tags!r}") from exc
    if not all(isinstance(t, str) for t in tags):
        raise ValidationError(f"Tags must be strings: {tags!r}")
    return tags


def recency_score(
    contact: Contact,
    interactions: Iterable[Interaction],
    config: UrgencyConfig,
    now: datetime,
) -> float:
    """Exponential decay on the days since the last interaction with the contact."""
    dates = [as_local(i.created_at) for i in interactions if i.contact_id == contact.id]
    if not dates:
        return 0.5
    days_since = (now - max(dates)).total_seconds() / 86400
    return _clamp(math.exp(-days_since / config.recency_decay_days), 0.1, 1.0)


def tag_weight(tags, config: UrgencyConfig) -> float:
    try:
        parsed = _parse_tags(tags)
    except ValidationError:
        logger.warning("Failed to parse interaction tags %r", tags, exc_info=True)
        return DEFAULT_WEIGHT
    scores = [config.tag_weights.get(t.lower(), DEFAULT_WEIGHT) for t in parsed]
    scores = [s for s in scores if s > 0]
    return max(scores) if scores else DEFAULT_WEIGHT


def urgency_score(interaction: Interaction, config: UrgencyConfig) -> float:
    type_weight = config.type_weights.get(interaction.type, DEFAULT_WEIGHT)
    return (type_weight + tag_weight(interaction.tags, config)) / 2


def snooze_penalty(interaction: Interaction, config: UrgencyConfig) -> float:
    penalty = (1 - config.snooze_penalty) ** max(0, interaction.snooze_count)
    return max(0.1, penalty)


def time_multiplier(status: ReminderStatus, config: UrgencyConfig) -> float:
    if status.is_overdue:
        return config.overdue_multiplier
    if status.is_due_within_1_hour:
        return config.due_soon_multiplier
    if status.is_due_soon:
        return 1.2
    return 1.0


class PriorityScorer:
    """Ranks reminders on a 0-10 scale.

    score = clamp01(mean(recency, urgency, snooze_penalty) * time_multiplier) * 10
    """

    def __init__(
        self,
        classifier: StatusClassifier | None = None,
        config: UrgencyConfig | None = None,
        clock: SystemClock = system_clock,
    ) -> None:
        self.classifier = classifier or StatusClassifier(clock=clock)
        self.config = config or DEFAULT_URGENCY_CONFIG
        self.clock = clock

    def score(
        self,
        interaction: Interaction,
        contact: Contact,
        all_interactions: Iterable[Interaction],
        config: UrgencyConfig | None = None,
        now: datetime | None = None,
    ) -> PriorityRecord:
        config = config or self.config
        now = as_local(now or self.clock.now())
        status = self.classifier.classify(interaction, now)

        recency = recency_score(contact, all_interactions, config, now)
        urgency = urgency_score(interaction, config)
        snooze = snooze_penalty(interaction, config)
        multiplier = time_multiplier(status, config)

        base = (recency + urgency + snooze) / 3
        final = _clamp(_clamp(base * multiplier, 0.0, 1.0) * 10, 0.0, 10.0)

        return PriorityRecord(
            interaction=interaction,
            contact=contact,
            score=final,
            factors=PriorityFactors(
                recency=recency,
                urgency=urgency,
                snooze_penalty=snooze,
                overdue_multiplier=config.overdue_multiplier if status.is_overdue else 1.0,
                due_soon_multiplier=(
                    config.due_soon_multiplier if status.is_due_within_1_hour else 1.0
                ),
                time_multiplier=multiplier,
            ),
            status=status,
        )

    def prioritize(
        self,
        interactions: Iterable[Interaction],
        contacts: Iterable[Contact],
        config: UrgencyConfig | None = None,
        now: datetime | None = None,
    ) -> list[PriorityRecord]:
        """Score every active reminder, highest first.

        Reminders whose contact is missing are logged and skipped.
        """
        interactions = list(interactions)
        by_id = {c.id: c for c in contacts}
        records = []
        for interaction in interactions:
            if not interaction.follow_up_required or interaction.is_done:
                continue
            try:
                contact = by_id.get(interaction.contact_id)
                if contact is None:
                    raise NotFoundError(
                        f"Contact {interaction.contact_id} for interaction "
                        f"{interaction.id} not found"
                    )
                records.append(self.score(interaction, contact, interactions, config, now))
            except NotFoundError as exc:
                logger.warning("Skipping reminder: %s", exc)
            except Exception:
                logger.exception("Failed to score interaction %s", interaction.id)
        return sort_by_priority(records)


def sort_by_priority(records: Iterable[PriorityRecord]) -> list[PriorityRecord]:
    # sorted() is stable, so ties keep insertion order
    return sorted(records, key=lambda r: r.score, reverse=True)


def top_priority(records: Iterable[PriorityRecord], limit: int = 10) -> list[PriorityRecord]:
    return sort_by_priority(records)[:limit]


def filter_by_minimum(records: Iterable[PriorityRecord], min_score: float = 5.0) -> list[PriorityRecord]:
    return [r for r in records if r.score >= min_score]


def group_by_priority(records: Iterable[PriorityRecord]) -> dict[str, list[PriorityRecord]]:
    groups: dict[str, list[PriorityRecord]] = {"high": [], "medium": [], "low": []}
    for record in records:
        if record.score >= HIGH_PRIORITY:
            groups["high"].append(record)
        elif record.score >= MEDIUM_PRIORITY:
            groups["medium"].append(record)
        else:
            groups["low"].append(record)
    return groups


def priority_insights(record: PriorityRecord) -> list[str]:
    insights = []
    if record.factors.recency > 0.8:
        insights.append("Recent contact - high engagement")
    elif record.factors.recency < 0.3:
        insights.append("Older contact - may need re-engagement")
    if record.factors.urgency > 0.8:
        insights.append("High urgency interaction type")
    if record.factors.snooze_penalty < 0.5:
        insights.append("Previously snoozed multiple times")
    if record.status.is_overdue:
        insights.append("Overdue - immediate attention needed")
    elif record.status.is_due_within_1_hour:
        insights.append("Due within 1 hour")
    return insights


def boost_for_scenario(record: PriorityRecord, scenario: str) -> PriorityRecord:
    """Scale score and urgency for a job-search scenario, re-clamped."""
    boost = SCENARIO_BOOSTS.get(scenario, 1.0)
    return replace(
        record,
        score=_clamp(record.score * boost, 0.0, 10.0),
        factors=replace(record.factors, urgency=_clamp(record.factors.urgency * boost, 0.0, 1.0)),
    )
