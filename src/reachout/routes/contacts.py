from __future__ import annotations

from fastapi import APIRouter, Request

from reachout.models import Contact
from reachout.routes.schemas import ContactIn, contact_out, interaction_out

router = APIRouter(prefix="/contacts", tags=["contacts"])


def _engine(request: Request):
    return request.app.state.engine


@router.get("")
async def list_contacts(request: Request):
    engine = _engine(request)
    return [contact_out(c) for c in engine.store.list_contacts()]


@router.post("", status_code=201)
async def create_contact(request: Request, body: ContactIn):
    engine = _engine(request)
    contact = engine.store.add_contact(Contact(**body.model_dump()))
    engine.collection.add_contact(contact)
    return contact_out(contact)


@router.get("/{contact_id}")
async def contact_detail(request: Request, contact_id: int):
    engine = _engine(request)
    contact = engine.store.get_contact(contact_id)
    interactions = [
        i for i in engine.collection.interactions() if i.contact_id == contact_id
    ]
    return {
        **contact_out(contact),
        "interactions": [interaction_out(i) for i in interactions],
    }
