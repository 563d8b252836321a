"""Region selection from client timezones."""
from __future__ import annotations

import pytest

from web_operator.region import (
    AP_SOUTHEAST_1,
    DEFAULT_REGION,
    EU_CENTRAL_1,
    EXACT_TIMEZONES,
    OFFSET_RANGES,
    REGIONS,
    US_EAST_1,
    US_WEST_2,
    region_for_offset,
    select_region,
)


class TestExactAndPrefix:
    @pytest.mark.parametrize("tz", sorted(EXACT_TIMEZONES))
    def test_exact_table(self, tz: str) -> None:
        assert select_region(tz) == US_EAST_1

    @pytest.mark.parametrize(
        "tz,region",
        [
            ("America/Los_Angeles", US_WEST_2),
            ("US/Pacific", US_WEST_2),
            ("Canada/Mountain", US_WEST_2),
            ("Europe/Berlin", EU_CENTRAL_1),
            ("Africa/Lagos", EU_CENTRAL_1),
            ("Asia/Shanghai", AP_SOUTHEAST_1),
            ("Australia/Sydney", AP_SOUTHEAST_1),
            ("Pacific/Auckland", AP_SOUTHEAST_1),
        ],
    )
    def test_prefix_table(self, tz: str, region: str) -> None:
        assert select_region(tz) == region

    def test_exact_match_wins_over_prefix(self) -> None:
        assert select_region("America/Chicago") == US_EAST_1


class TestOffsets:
    def test_ranges_cover_every_whole_hour_once(self) -> None:
        for hour in range(-24, 25):
            owners = [r for low, high, r in OFFSET_RANGES if low <= hour <= high]
            assert len(owners) == 1, f"hour {hour} owned by {owners}"

    @pytest.mark.parametrize(
        "hours,region",
        [
            (-24, US_WEST_2),
            (-4, US_WEST_2),
            (-3, EU_CENTRAL_1),
            (4, EU_CENTRAL_1),
            (5, AP_SOUTHEAST_1),
            (24, AP_SOUTHEAST_1),
        ],
    )
    def test_boundaries(self, hours: int, region: str) -> None:
        assert region_for_offset(hours) == region

    def test_fractional_offsets_have_no_gap(self) -> None:
        assert region_for_offset(-3.5) == US_WEST_2
        assert region_for_offset(4.5) == EU_CENTRAL_1
        assert region_for_offset(5.75) == AP_SOUTHEAST_1

    @pytest.mark.parametrize(
        "tz,region",
        [
            ("UTC", EU_CENTRAL_1),
            ("Etc/GMT+5", US_WEST_2),  # POSIX sign: UTC-5
            ("Etc/GMT-9", AP_SOUTHEAST_1),
        ],
    )
    def test_offset_fallback_for_unprefixed_zones(self, tz: str, region: str) -> None:
        assert select_region(tz) == region


class TestTotality:
    @pytest.mark.parametrize("tz", [None, "", "Not/AZone", "garbage", "../etc/passwd", "Mars/Olympus", "\x00"])
    def test_never_raises_and_defaults(self, tz) -> None:
        assert select_region(tz) == DEFAULT_REGION

    @pytest.mark.parametrize(
        "tz",
        ["America/New_York", "Europe/Paris", "Asia/Tokyo", "UTC", "Etc/GMT+12", "Etc/GMT-14", "bogus", None],
    )
    def test_always_a_known_region(self, tz) -> None:
        assert select_region(tz) in REGIONS
