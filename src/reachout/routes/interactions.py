from __future__ import annotations

from fastapi import APIRouter, Request

from reachout.errors import NotFoundError
from reachout.models import Interaction
from reachout.routes.schemas import (
    DoneIn,
    InteractionIn,
    SnoozeIn,
    deleted_out,
    interaction_out,
)

router = APIRouter(prefix="/interactions", tags=["interactions"])


def _engine(request: Request):
    return request.app.state.engine


def _active(engine, interaction_id: int) -> Interaction:
    interaction = engine.collection.get(interaction_id)
    if interaction is None:
        raise NotFoundError(f"Interaction {interaction_id} not found")
    return interaction


def _contact_name(engine, interaction: Interaction) -> str:
    contact = engine.collection.contact(interaction.contact_id)
    return contact.name if contact else ""


@router.get("")
async def list_interactions(request: Request):
    return [interaction_out(i) for i in _engine(request).collection.interactions()]


@router.post("", status_code=201)
async def create_interaction(request: Request, body: InteractionIn):
    engine = _engine(request)
    data = body.model_dump()
    data["tags"] = set(data["tags"])
    interaction = engine.store.add_interaction(Interaction(**data))
    engine.collection.add(interaction)
    return interaction_out(interaction)


@router.post("/{interaction_id}/snooze")
async def snooze_interaction(request: Request, interaction_id: int, body: SnoozeIn):
    engine = _engine(request)
    _active(engine, interaction_id)
    interaction = engine.store.snooze(interaction_id, body.new_date)
    engine.collection.add(interaction)
    return interaction_out(interaction)


@router.post("/{interaction_id}/done")
async def mark_done(request: Request, interaction_id: int, body: DoneIn | None = None):
    engine = _engine(request)
    _active(engine, interaction_id)
    interaction = engine.store.mark_done(interaction_id, body.done if body else True)
    engine.collection.add(interaction)
    engine.scheduler.mark_as_checked(interaction_id)
    return interaction_out(interaction)


@router.delete("/{interaction_id}")
async def delete_interaction(request: Request, interaction_id: int):
    engine = _engine(request)
    interaction = _active(engine, interaction_id)
    record = await engine.deletions.optimistic_delete(
        interaction, _contact_name(engine, interaction)
    )
    return {**deleted_out(record), "undo_seconds": engine.deletions.undo_window}


@router.post("/{interaction_id}/soft-delete")
async def soft_delete_interaction(request: Request, interaction_id: int):
    engine = _engine(request)
    interaction = _active(engine, interaction_id)
    record = engine.deletions.soft_delete(interaction, _contact_name(engine, interaction))
    return {**deleted_out(record), "commit_in_seconds": engine.deletions.soft_delete_window}


@router.post("/{interaction_id}/undo")
async def undo_delete(request: Request, interaction_id: int):
    engine = _engine(request)
    restored = await engine.deletions.undo(interaction_id)
    return interaction_out(restored)
