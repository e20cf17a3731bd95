from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Request

from reachout.services.priority import SCENARIO_BOOSTS, boost_for_scenario, group_by_priority
from reachout.routes.schemas import interaction_out, priority_out

router = APIRouter(prefix="/reminders", tags=["reminders"])


def _engine(request: Request):
    return request.app.state.engine


@router.get("")
async def prioritized_reminders(request: Request, scenario: str = ""):
    engine = _engine(request)
    records = engine.scorer.prioritize(
        engine.collection.interactions(), engine.collection.contacts()
    )
    if scenario in SCENARIO_BOOSTS:
        records = [
            boost_for_scenario(r, scenario) if scenario in r.interaction.tags else r
            for r in records
        ]
    groups = group_by_priority(records)
    return {level: [priority_out(r) for r in items] for level, items in groups.items()}


@router.get("/stats")
async def reminder_stats(request: Request):
    engine = _engine(request)
    return asdict(engine.classifier.stats(engine.collection.interactions()))


@router.get("/overdue")
async def recently_overdue(request: Request):
    engine = _engine(request)
    pairs = engine.notifier.overdue_reminders_data(engine.scheduler.recently_overdue)
    return [
        {**interaction_out(interaction), "contact_name": contact.name}
        for interaction, contact in pairs
    ]


@router.post("/check")
async def check_now(request: Request):
    engine = _engine(request)
    result = engine.scheduler.check()
    return {
        "checked_at": result.checked_at.isoformat(),
        "current_overdue": result.current_overdue,
        "newly_overdue": result.newly_overdue,
        "due_soon": result.due_soon,
        "due_today": result.due_today,
    }


@router.post("/{interaction_id}/checked", status_code=204)
async def mark_checked(request: Request, interaction_id: int):
    _engine(request).scheduler.mark_as_checked(interaction_id)


@router.delete("/overdue", status_code=204)
async def dismiss_all(request: Request):
    _engine(request).scheduler.clear_recently_overdue()
