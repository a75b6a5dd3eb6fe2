from datetime import datetime, timedelta, timezone
from power_brain.normalizer import extract_number, iso_utc, lower, normalize_phone, resolve, to_str, truthy, yes_no


def test_to_str_and_lower():
    assert to_str(None) == ""
    assert to_str("  hi ") == "hi"
    assert to_str(True) == "true"
    assert to_str(12.5) == "12.5"
    assert lower(" YES ") == "yes"


def test_resolve_first_non_blank():
    lead = {"A": "", "b": "   ", "c": 0, "d": "x"}
    assert resolve(lead, ("A", "b", "c", "d")) == "0"
    assert resolve(lead, ("A", "b")) is None
    assert resolve({}, ("A",)) is None
    assert resolve({"A": False}, ("A",)) == "false"


def test_yes_no_tristate():
    for v in ["yes", "Y", "TRUE", "1", "Checked", "on", True, 1]:
        assert yes_no(v) == "yes"
    for v in ["no", "N", "false", "0", "OFF", False, 0]:
        assert yes_no(v) == "no"
    for v in [None, "", "maybe", "yes please", "I own it", 2]:
        assert yes_no(v) == "unknown"


def test_extract_number():
    assert extract_number("$1,250.50") == 1250.5
    assert extract_number("12 yrs") == 12.0
    assert extract_number(300) == 300.0
    assert extract_number("0") is None
    assert extract_number("1.2.3") is None
    assert extract_number("about fifteen") is None
    assert extract_number(None) is None
    assert extract_number("-40") == 40.0


def test_truthy():
    assert truthy(True) is True
    assert truthy(False) is False
    assert truthy("Checked") is True
    assert truthy("on") is True
    assert truthy("no") is False
    assert truthy(None) is False
    assert truthy("off") is False


def test_phone_normalization():
    assert normalize_phone("(661) 555-1234") == "6615551234"
    assert normalize_phone("+1 661 555 1234") == "6615551234"
    assert normalize_phone("555-1234") == "5551234"
    assert normalize_phone(None) == ""



def test_iso_utc_uses_z_and_milliseconds():
    assert iso_utc(datetime(2026, 1, 2, 3, 4, 5, 678900, tzinfo=timezone.utc)) == "2026-01-02T03:04:05.678Z"
    pacific = timezone(timedelta(hours=-8))
    assert iso_utc(datetime(2026, 1, 1, 19, 0, tzinfo=pacific)) == "2026-01-02T03:00:00.000Z"
    assert iso_utc().endswith("Z")
