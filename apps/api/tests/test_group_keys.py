"""Tests for production-day group keys."""

from datetime import date, datetime, timezone, timedelta

import pytest

from batch_code_core.errors import InvalidInputError
from batch_code_core.group_keys import group_key_for, production_day


class TestGroupKeyFor:
    def test_date_is_mmddyy(self):
        assert group_key_for(date(2026, 2, 17)) == "021726"

    def test_zero_padded(self):
        assert group_key_for(date(2030, 1, 5)) == "010530"

    def test_iso_date_string(self):
        assert group_key_for("2026-02-17") == "021726"

    def test_iso_datetime_string(self):
        assert group_key_for("2026-02-17T23:59:59+00:00") == "021726"

    def test_same_day_same_key(self):
        morning = datetime(2026, 2, 17, 0, 1, tzinfo=timezone.utc)
        night = datetime(2026, 2, 17, 23, 59, tzinfo=timezone.utc)
        assert group_key_for(morning) == group_key_for(night)

    def test_different_days_different_keys(self):
        assert group_key_for(date(2026, 2, 17)) != group_key_for(date(2026, 2, 18))


class TestTimezone:
    def test_aware_datetime_converted_to_configured_zone(self):
        # 02:00 UTC on the 18th is still the 17th in New York
        at = datetime(2026, 2, 18, 2, 0, tzinfo=timezone.utc)
        assert group_key_for(at, "America/New_York") == "021726"
        assert group_key_for(at, "UTC") == "021826"

    def test_naive_datetime_is_wall_clock(self):
        at = datetime(2026, 2, 17, 23, 30)
        assert group_key_for(at, "Asia/Tokyo") == "021726"

    def test_fixed_offset_tzinfo(self):
        at = datetime(2026, 2, 17, 22, 0, tzinfo=timezone.utc)
        assert production_day(at, timezone(timedelta(hours=5))) == date(2026, 2, 18)

    def test_unknown_timezone(self):
        with pytest.raises(InvalidInputError):
            group_key_for(date(2026, 2, 17), "Mars/Olympus_Mons")


class TestInvalidInput:
    @pytest.mark.parametrize("value", ["", "   ", "not a date", "2026-02-30", "17/02/2026"])
    def test_bad_strings(self, value):
        with pytest.raises(InvalidInputError):
            group_key_for(value)

    @pytest.mark.parametrize("value", [None, 20260217, 3.5, ["2026-02-17"]])
    def test_bad_types(self, value):
        with pytest.raises(InvalidInputError):
            group_key_for(value)


class TestCentury:
    def test_keys_do_not_repeat_across_centuries(self):
        assert group_key_for(date(2026, 2, 17)) == "021726"
        for year in (1926, 2126):
            with pytest.raises(InvalidInputError):
                group_key_for(date(year, 2, 17))

    def test_century_bounds(self):
        assert group_key_for(date(2000, 1, 1)) == "010100"
        assert group_key_for(date(2099, 12, 31)) == "123199"

    def test_conversion_across_the_boundary(self):
        # still 2099-12-31 in New York
        at = datetime(2100, 1, 1, 2, 0, tzinfo=timezone.utc)
        assert group_key_for(at, "America/New_York") == "123199"
        with pytest.raises(InvalidInputError):
            group_key_for(at, "UTC")

    def test_utc_designator(self):
        assert group_key_for("2026-02-17T09:30:00Z") == "021726"
