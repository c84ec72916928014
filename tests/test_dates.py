"""Tests for date normalization."""
import logging

import pytest

from auction_invoice.core.dates import normalize_date


@pytest.mark.parametrize("raw, expected", [
    ("2025-11-20", "2025-11-20"),
    ("20/11/2025", "2025-11-20"),
    ("20-11-2025", "2025-11-20"),
    ("20.11.2025", "2025-11-20"),
    ("20/11/25", "2025-11-20"),
    ("20-11-25", "2025-11-20"),
    ("20.11.25", "2025-11-20"),
    ("5/3/2025", "2025-03-05"),
    ("  20/11/2025  ", "2025-11-20"),
    ("01/01/2025", "2025-01-01"),
    ("31/12/2025", "2025-12-31"),
])
def test_known_formats_are_normalized(raw, expected):
    """Test ISO and day-first formats."""
    assert normalize_date(raw) == expected


def test_two_digit_years_use_fixed_century():
    """Test two-digit years always map into 2000-2099."""
    assert normalize_date("01/01/00") == "2000-01-01"
    assert normalize_date("01/01/99") == "2099-01-01"


def test_passthrough_values():
    """Test None and empty input pass through unchanged."""
    assert normalize_date(None) is None
    assert normalize_date("") == ""


def test_unparseable_returns_original_and_warns(caplog):
    """Test unparseable input is returned as-is with a warning."""
    with caplog.at_level(logging.WARNING, logger="auction_invoice.core.dates"):
        assert normalize_date("not-a-date") == "not-a-date"

    assert any("not-a-date" in record.message for record in caplog.records)


def test_fallback_parser_handles_written_dates():
    """Test the general parser for month-name formats."""
    assert normalize_date("20 November 2025") == "2025-11-20"
    assert normalize_date("Nov 3, 2024") == "2024-11-03"


def test_fallback_parser_returns_utc_calendar_date():
    """Test timezone-aware timestamps are converted to UTC first."""
    assert normalize_date("2025-11-20T23:30:00-02:00") == "2025-11-21"
    assert normalize_date("2025-11-20T10:00:00Z") == "2025-11-20"


@pytest.mark.parametrize("raw, expected", [
    ("November 2025", "2025-11-01"),
    ("Nov 2024", "2024-11-01"),
])
def test_partial_dates_are_deterministic(raw, expected):
    """Test missing day or month fall back to the first, not today."""
    assert normalize_date(raw) == expected
