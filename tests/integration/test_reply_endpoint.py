# tests/integration/test_reply_endpoint.py
"""
POST /conversations/<id>/reply: texto livre só com a janela de 24h aberta.
"""

from notifier.models.conversations import find_conversation
from notifier.models.storage import get_conn
from tests.factories.event_factory import make_incoming_text_payload, sign_body
from tests.factories.records import GUEST_E164, GUEST_WA_ID, TENANT_ID, WEBHOOK_SECRET, make_conversation


def _open_conversation(client, app_db):
    raw, headers = sign_body(WEBHOOK_SECRET, make_incoming_text_payload(from_number=GUEST_WA_ID, text="Hi"))
    client.post("/", data=raw, headers=headers)
    with get_conn(app_db) as conn:
        return find_conversation(conn, tenant_id=TENANT_ID, guest_phone=GUEST_E164)


def test_reply_inside_window(client, app_db):
    conv = _open_conversation(client, app_db)

    resp = client.post(f"/conversations/{conv['id']}/reply", json={"content": "Welcome!", "sender_id": "op-1"})

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["ok"] is True
    assert data["provider_message_id"].startswith("wamid.DEV.")

    messages = client.get(f"/conversations/{conv['id']}/messages").get_json()["items"]
    assert sorted(m["content"] for m in messages) == ["Hi", "Welcome!"]


def test_reply_without_inbound_requires_template(client, app_db):
    conv = make_conversation(app_db, guest_phone="+27830000000")

    resp = client.post(f"/conversations/{conv['id']}/reply", json={"content": "Hello?"})

    assert resp.status_code == 409
    assert resp.get_json() == {"error": "template required", "code": "TEMPLATE_REQUIRED"}


def test_reply_errors(client, app_db):
    assert client.post("/conversations/missing/reply", json={"content": "Hi"}).status_code == 404

    conv = _open_conversation(client, app_db)
    resp = client.post(f"/conversations/{conv['id']}/reply", json={"content": ""})
    assert resp.status_code == 400
