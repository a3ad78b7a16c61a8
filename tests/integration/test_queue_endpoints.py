# tests/integration/test_queue_endpoints.py
"""
Administração da fila via HTTP e comandos CLI.
"""

import pytest

from tests.factories.records import make_booking, make_template


@pytest.fixture
def item(client, app_db):
    make_template(app_db)
    booking_id = make_booking(app_db)
    resp = client.post("/send", json={"trigger_type": "booking_created", "booking_id": booking_id})
    return resp.get_json()["item"]


def test_stats_and_pending(client, item):
    stats = client.get("/queue/stats").get_json()["stats"]
    assert stats["pending"] == 1
    assert stats["total"] == 1
    assert stats["oldest_pending_at"] == item["created_at"]

    data = client.get("/queue/pending?limit=5").get_json()
    assert data["total"] == 1
    assert data["limit"] == 5
    assert [i["id"] for i in data["items"]] == [item["id"]]


@pytest.mark.parametrize("query", ["limit=abc", "limit=0", "limit=1000", "offset=-1"])
def test_pending_rejects_bad_paging(client, query):
    resp = client.get(f"/queue/pending?{query}")
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"


def test_cancel_then_retry(client, item):
    resp = client.post(f"/queue/{item['id']}/cancel")
    assert resp.status_code == 200
    assert resp.get_json()["item"]["status"] == "cancelled"

    # segundo cancel: item já terminal
    assert client.post(f"/queue/{item['id']}/cancel").status_code == 400

    resp = client.post(f"/queue/{item['id']}/retry")
    assert resp.status_code == 200
    retried = resp.get_json()["item"]
    assert retried["status"] == "pending"
    assert retried["retry_count"] == 0


def test_unknown_item_is_404(client):
    assert client.post("/queue/nope/cancel").status_code == 404
    assert client.post("/queue/nope/retry").status_code == 404


def test_process_queue_cli(app, item):
    result = app.test_cli_runner().invoke(args=["process-queue"])
    assert result.exit_code == 0
    assert "'succeeded': 1" in result.output


def test_cleanup_queue_cli(app, item):
    result = app.test_cli_runner().invoke(args=["cleanup-queue", "--days", "30"])
    assert result.exit_code == 0
    assert "deleted 0 queue items" in result.output
