# tests/unit/test_phones.py
import pytest

from notifier.phones import is_valid_e164, mask_phone, to_e164


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0821234567", "+27821234567"),
        ("27821234567", "+27821234567"),
        ("+27 82 123-4567", "+27821234567"),
        ("", ""),
        (None, ""),
    ],
)
def test_to_e164(raw, expected):
    assert to_e164(raw) == expected


def test_country_code_is_configurable():
    assert to_e164("011987654321", "55") == "+5511987654321"


def test_is_valid_e164():
    assert is_valid_e164("+27821234567")
    assert not is_valid_e164("27821234567")
    assert not is_valid_e164("+0821234567")
    assert not is_valid_e164("")


def test_mask_phone():
    assert mask_phone("+27821234567") == "2782*****67"
    assert mask_phone("12345") == "***45"
    assert mask_phone(None) is None
