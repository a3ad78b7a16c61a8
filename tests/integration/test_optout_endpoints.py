# tests/integration/test_optout_endpoints.py


def test_opt_out_lifecycle(client):
    resp = client.get("/opt-outs/0821234567")
    assert resp.status_code == 200
    assert resp.get_json()["opted_out"] is False

    resp = client.post("/opt-outs", json={"phone_number": "0821234567", "reason": "asked", "source": "admin"})
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["phone_number"] == "+27821234567"
    assert data["opted_out"] is True
    assert data["source"] == "admin"

    resp = client.delete("/opt-outs/+27821234567")
    assert resp.status_code == 200
    assert resp.get_json()["opted_out"] is False


def test_opt_out_validation(client):
    assert client.post("/opt-outs", json={}).status_code == 400
    assert client.post("/opt-outs", json={"phone_number": "abc"}).status_code == 400
    resp = client.post("/opt-outs", json={"phone_number": "0821234567", "source": "fax"})
    assert resp.status_code == 400
