"""
Maps a client timezone to the closest provisioning region.
"""

import logging
import math
from datetime import datetime, timezone as dt_timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

US_WEST_2 = "us-west-2"
US_EAST_1 = "us-east-1"
EU_CENTRAL_1 = "eu-central-1"
AP_SOUTHEAST_1 = "ap-southeast-1"

REGIONS = (US_WEST_2, US_EAST_1, EU_CENTRAL_1, AP_SOUTHEAST_1)
DEFAULT_REGION = US_WEST_2

EXACT_TIMEZONES: Dict[str, str] = {
    "America/New_York": US_EAST_1,
    "America/Detroit": US_EAST_1,
    "America/Toronto": US_EAST_1,
    "America/Montreal": US_EAST_1,
    "America/Boston": US_EAST_1,
    "America/Chicago": US_EAST_1,
}

PREFIX_REGIONS: Dict[str, str] = {
    "America": US_WEST_2,
    "US": US_WEST_2,
    "Canada": US_WEST_2,
    "Europe": EU_CENTRAL_1,
    "Africa": EU_CENTRAL_1,
    "Asia": AP_SOUTHEAST_1,
    "Australia": AP_SOUTHEAST_1,
    "Pacific": AP_SOUTHEAST_1,
}

# Inclusive whole-hour bounds; together they cover -24..24 exactly once.
OFFSET_RANGES: List[Tuple[int, int, str]] = [
    (-24, -4, US_WEST_2),
    (-3, 4, EU_CENTRAL_1),
    (5, 24, AP_SOUTHEAST_1),
]


def region_for_offset(hours: float) -> Optional[str]:
    """Bucket a UTC offset in hours. Fractional offsets floor to the hour."""
    bucket = math.floor(hours)
    for low, high, region in OFFSET_RANGES:
        if low <= bucket <= high:
            return region
    return None


def utc_offset_hours(tz_name: str, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(dt_timezone.utc)
    offset = now.astimezone(ZoneInfo(tz_name)).utcoffset()
    return offset.total_seconds() / 3600 if offset is not None else 0.0


def select_region(timezone: Optional[str] = None) -> str:
    """Pick a region for *timezone*. Never raises."""
    try:
        if not timezone:
            return DEFAULT_REGION

        if timezone in EXACT_TIMEZONES:
            return EXACT_TIMEZONES[timezone]

        prefix = timezone.split("/")[0]
        if prefix in PREFIX_REGIONS:
            return PREFIX_REGIONS[prefix]

        return region_for_offset(utc_offset_hours(timezone)) or DEFAULT_REGION
    except Exception as e:
        logger.debug(f"Region lookup failed for timezone {timezone!r}: {e}")
        return DEFAULT_REGION
