# ============================================================================
# tests/unit/test_patterns.py
# ============================================================================
"""
Tests for dose pattern expansion
"""

from datetime import date

import pytest

from mediminder.schemas.models import Medication
from mediminder.services.patterns import custom_dose_id, expand_pattern, parse_pattern


TODAY = date(2026, 1, 5)


def _med(pattern: str) -> Medication:
    return Medication(med_id="med-1", name="Amoxicillin", pattern=pattern)


class TestParsePattern:
    """Test pattern segment parsing"""

    @pytest.mark.parametrize("pattern,expected", [
        ("1-0-1", [1, 0, 1]),
        ("1-1-1-1", [1, 1, 1, 1]),
        ("2-x-1", [2, 0, 1]),
        ("1tab-0-1", [1, 0, 1]),
        ("", [0]),
    ])
    def test_segments(self, pattern, expected):
        assert parse_pattern(pattern) == expected


class TestExpandPattern:
    """Test dose generation"""

    def test_three_segments_skip_evening(self, tz):
        doses = expand_pattern(_med("1-1-1"), days=1, today=TODAY, tz=tz)
        assert [d.slot for d in doses] == ["morning", "afternoon", "night"]
        assert [d.when_iso for d in doses] == [
            "2026-01-05T07:30:00+05:30",
            "2026-01-05T13:00:00+05:30",
            "2026-01-05T21:30:00+05:30",
        ]

    def test_four_segments_include_evening(self, tz):
        doses = expand_pattern(_med("0-0-1-0"), days=1, today=TODAY, tz=tz)
        assert [(d.slot, d.when_iso) for d in doses] == [("evening", "2026-01-05T18:30:00+05:30")]

    def test_count_and_ids(self, tz):
        doses = expand_pattern(_med("1-0-1"), days=3, today=TODAY, tz=tz)
        assert len(doses) == 6
        assert doses[0].dose_id == "med-1-2026-01-05-morning-1"
        assert doses[-1].dose_id == "med-1-2026-01-07-night-1"
        assert all(d.status == "scheduled" and d.med_id == "med-1" for d in doses)
        assert len({d.dose_id for d in doses}) == 6

    def test_same_slot_doses_are_staggered(self, tz):
        doses = expand_pattern(_med("2-0-0"), days=1, today=TODAY, tz=tz)
        assert [d.dose_id for d in doses] == ["med-1-2026-01-05-morning-1", "med-1-2026-01-05-morning-2"]
        assert [d.when_iso for d in doses] == ["2026-01-05T07:30:00+05:30", "2026-01-05T08:00:00+05:30"]

    def test_deterministic(self, tz):
        a = expand_pattern(_med("1-1-1-1"), days=2, today=TODAY, tz=tz)
        b = expand_pattern(_med("1-1-1-1"), days=2, today=TODAY, tz=tz)
        assert a == b

    def test_malformed_segments_produce_no_doses(self, tz):
        doses = expand_pattern(_med("a-1-b"), days=1, today=TODAY, tz=tz)
        assert [d.slot for d in doses] == ["afternoon"]

    @pytest.mark.parametrize("pattern,days", [("custom", 7), ("CUSTOM", 7), ("1-0-1", 0), ("1-0-1", -1)])
    def test_nothing_to_expand(self, tz, pattern, days):
        assert expand_pattern(_med(pattern), days=days, today=TODAY, tz=tz) == []

    def test_crosses_month_boundary(self, tz):
        doses = expand_pattern(_med("1-0-0"), days=2, today=date(2026, 1, 31), tz=tz)
        assert [d.when_iso[:10] for d in doses] == ["2026-01-31", "2026-02-01"]


def test_custom_dose_id():
    assert custom_dose_id("med-1", "2026-01-05T08:00:00+05:30") == "med-1-2026-01-05T08:00:00+05:30"
