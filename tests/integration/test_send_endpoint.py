# tests/integration/test_send_endpoint.py
"""
Testes de integração para o endpoint /send e o ciclo de processamento (DRY_RUN).
"""

import pytest

from notifier.models import messages as msg_store
from tests.factories.records import make_booking, make_template


@pytest.fixture
def booking_id(app_db):
    make_template(app_db)
    return make_booking(app_db)


def test_send_enqueues_and_process_delivers(client, app_db, booking_id):
    resp = client.post("/send", json={"trigger_type": "booking_created", "booking_id": booking_id, "priority": 3})

    assert resp.status_code == 201
    item = resp.get_json()["item"]
    assert item["status"] == "pending"
    assert item["priority"] == 3

    result = client.post("/queue/process").get_json()["result"]
    assert result["succeeded"] == 1

    meta = msg_store.get_metadata(app_db, item["message_metadata_id"])
    assert meta["status"] == msg_store.SENT
    assert meta["provider_message_id"].startswith("wamid.DEV.")


@pytest.mark.parametrize(
    "payload,code",
    [
        ({}, "VALIDATION_ERROR"),
        ({"trigger_type": "booking_created"}, "VALIDATION_ERROR"),
        ({"trigger_type": "booking_created", "booking_id": "BOOKING", "fallback_to_email": "yes"}, "VALIDATION_ERROR"),
        ({"trigger_type": "booking_created", "booking_id": "BOOKING", "priority": 42}, "VALIDATION_ERROR"),
    ],
)
def test_send_invalid_payloads(client, booking_id, payload, code):
    if payload.get("booking_id") == "BOOKING":
        payload = {**payload, "booking_id": booking_id}
    resp = client.post("/send", json=payload)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == code


def test_internal_token_is_enforced(client, app, booking_id):
    app.config["INTERNAL_API_TOKEN"] = "internal-secret"
    body = {"trigger_type": "booking_created", "booking_id": booking_id}

    resp = client.post("/send", json=body)
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "UNAUTHORIZED"

    resp = client.post("/send", json=body, headers={"X-Internal-Token": "internal-secret"})
    assert resp.status_code == 201
