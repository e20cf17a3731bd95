from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from reachout.config import Settings
from reachout.web import create_app


@pytest.fixture
def client(tmp_path):
    settings = Settings(db_path=tmp_path / "test.db")
    app = create_app(settings)
    return TestClient(app)


@pytest.fixture
def contact_id(client):
    resp = client.post("/contacts", json={"name": "Sarah", "company": "Globex"})
    assert resp.status_code == 201
    return resp.json()["id"]


def _add(client, contact_id, due=None, **extra):
    payload = {"contact_id": contact_id, "summary": "Follow up on application", **extra}
    if due is not None:
        payload["follow_up_required"] = True
        payload["follow_up_due_date"] = due.isoformat()
    resp = client.post("/interactions", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_index_redirects_to_reminders(client):
    resp = client.get("/", follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/reminders"


def test_reminders_empty(client):
    resp = client.get("/reminders")
    assert resp.status_code == 200
    assert resp.json() == {"high": [], "medium": [], "low": []}


def test_overdue_reminder_ranks_high(client, contact_id):
    overdue = _add(client, contact_id, datetime.now() - timedelta(days=2), tags=["interview"])
    _add(client, contact_id, datetime.now() + timedelta(days=10), type="text")
    _add(client, contact_id)  # no follow-up

    groups = client.get("/reminders").json()
    assert groups["high"][0]["interaction"]["id"] == overdue["id"]
    top = groups["high"][0]
    assert top["status"]["status"] == "overdue"
    assert top["status"]["days_until_due"] == 0
    assert top["score"] == 10.0
    assert "Overdue - immediate attention needed" in top["insights"]
    assert sum(len(g) for g in groups.values()) == 2


def test_stats(client, contact_id):
    _add(client, contact_id, datetime.now() - timedelta(hours=1))
    _add(client, contact_id, datetime.now() + timedelta(days=5))
    stats = client.get("/reminders/stats").json()
    assert stats["total"] == 2
    assert stats["overdue"] == 1
    assert stats["upcoming"] == 1


def test_check_and_acknowledge(client, contact_id):
    created = _add(client, contact_id, datetime.now() - timedelta(hours=3))
    result = client.post("/reminders/check").json()
    assert result["newly_overdue"] == [created["id"]]

    overdue = client.get("/reminders/overdue").json()
    assert [o["id"] for o in overdue] == [created["id"]]
    assert overdue[0]["contact_name"] == "Sarah"

    assert client.post(f"/reminders/{created['id']}/checked").status_code == 204
    assert client.get("/reminders/overdue").json() == []
    assert client.post("/reminders/check").json()["newly_overdue"] == []


def test_snooze_and_done(client, contact_id):
    created = _add(client, contact_id, datetime.now() - timedelta(hours=3))
    later = datetime.now() + timedelta(days=2)
    snoozed = client.post(
        f"/interactions/{created['id']}/snooze", json={"new_date": later.isoformat()}
    ).json()
    assert snoozed["snooze_count"] == 1

    done = client.post(f"/interactions/{created['id']}/done").json()
    assert done["is_done"] is True
    assert client.get("/reminders/stats").json()["done"] == 1


def test_delete_and_undo(client, contact_id):
    created = _add(client, contact_id, datetime.now() + timedelta(days=1))

    resp = client.delete(f"/interactions/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["state"] == "committed"
    assert resp.json()["item_type"] == "reminder"
    assert client.get("/interactions").json() == []

    # the item is no longer active, so a second delete has nothing to act on
    assert client.delete(f"/interactions/{created['id']}").status_code == 404

    resp = client.post(f"/interactions/{created['id']}/undo")
    assert resp.status_code == 200
    assert resp.json()["id"] == created["id"]
    assert [i["id"] for i in client.get("/interactions").json()] == [created["id"]]


def test_undo_unknown_is_404(client):
    resp = client.post("/interactions/999/undo")
    assert resp.status_code == 404
    assert resp.json()["kind"] == "NotFoundError"


def test_invalid_interaction_type_is_422(client, contact_id):
    resp = client.post(
        "/interactions", json={"contact_id": contact_id, "summary": "x", "type": "fax"}
    )
    assert resp.status_code == 422


def test_contact_detail(client, contact_id):
    _add(client, contact_id)
    detail = client.get(f"/contacts/{contact_id}").json()
    assert detail["name"] == "Sarah"
    assert len(detail["interactions"]) == 1
    assert client.get("/contacts/999").status_code == 404
