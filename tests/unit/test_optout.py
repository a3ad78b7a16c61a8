# tests/unit/test_optout.py
import sqlite3

import pytest

from notifier.delivery import optout as optout_mod
from notifier.delivery.optout import is_record_opted_out
from notifier.errors import ValidationError


def test_unknown_phone_is_not_opted_out(opt_outs):
    assert opt_outs.is_opted_out("+27821234567") is False


def test_add_remove_cycle(opt_outs):
    opt_outs.add_opt_out("0821234567", reason="asked", source="admin")
    # mesmo número em outro formato -> mesma chave E.164
    assert opt_outs.is_opted_out("+27 82 123 4567") is True

    opt_outs.remove_opt_out("27821234567")
    assert opt_outs.is_opted_out("0821234567") is False

    opt_outs.add_opt_out("0821234567")
    assert opt_outs.is_opted_out("0821234567") is True


def test_status_keeps_opted_out_at_after_opt_in(opt_outs):
    opt_outs.add_opt_out("0821234567", reason="asked")
    opt_outs.remove_opt_out("0821234567")
    status = opt_outs.get_status("0821234567")
    assert status["phone_number"] == "+27821234567"
    assert status["opted_out"] is False
    assert status["opted_out_at"] is not None
    assert status["opted_in_at"] is not None


@pytest.mark.parametrize(
    "record,expected",
    [
        (None, False),
        ({"opted_in_at": None, "opted_out_at": "2026-01-01T00:00:00.000Z"}, True),
        ({"opted_in_at": "2026-01-02T00:00:00.000Z", "opted_out_at": "2026-01-01T00:00:00.000Z"}, False),
        ({"opted_in_at": "2026-01-01T00:00:00.000Z", "opted_out_at": "2026-01-02T00:00:00.000Z"}, True),
        ({"opted_in_at": "2026-01-01T00:00:00.000Z", "opted_out_at": None}, False),
    ],
)
def test_derived_state(record, expected):
    assert is_record_opted_out(record) is expected


def test_read_error_fails_safe(opt_outs, monkeypatch):
    def boom(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(optout_mod.store, "get_opt_out", boom)
    assert opt_outs.is_opted_out("0821234567") is True


def test_invalid_input(opt_outs):
    with pytest.raises(ValidationError):
        opt_outs.add_opt_out("abc")
    with pytest.raises(ValidationError):
        opt_outs.add_opt_out("0821234567", source="carrier-pigeon")
