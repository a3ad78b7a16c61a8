# tests/unit/test_window.py
from datetime import timedelta

import pytest

from notifier.delivery.window import (
    WindowState,
    is_window_active,
    require_open_window,
    window_state,
    window_status,
)
from notifier.errors import ComplianceError
from notifier.models.storage import iso
from tests.factories.records import T0


def test_no_inbound_yet():
    assert window_state(None, T0) is WindowState.NO_INBOUND_YET
    assert is_window_active(None, T0) is False


def test_open_just_before_24h():
    last = T0 - timedelta(hours=23, minutes=59, seconds=59)
    assert window_state(last, T0) is WindowState.OPEN


def test_exactly_24h_is_expired():
    last = T0 - timedelta(hours=24)
    assert window_state(last, T0) is WindowState.EXPIRED
    assert is_window_active(last, T0) is False


def test_accepts_iso_strings():
    assert is_window_active(iso(T0 - timedelta(hours=1)), T0) is True


def test_window_status_reports_remaining_hours():
    status = window_status(iso(T0 - timedelta(hours=6)), T0)
    assert status["window_active"] is True
    assert status["hours_remaining"] == 18.0
    assert status["expires_at"] == "2026-01-02T04:00:00.000Z"


def test_window_status_without_inbound():
    status = window_status(None, T0)
    assert status == {
        "state": "no-inbound-yet",
        "window_active": False,
        "last_inbound_at": None,
        "hours_remaining": 0.0,
        "expires_at": None,
    }


def test_require_open_window_raises_template_required():
    with pytest.raises(ComplianceError) as exc:
        require_open_window(T0 - timedelta(days=2), T0)
    assert exc.value.code == "TEMPLATE_REQUIRED"
    assert exc.value.message == "template required"

    require_open_window(T0 - timedelta(minutes=5), T0)
