"""
Input validation utilities
"""
import logging
import re
from typing import List, Optional, Sequence, Tuple, Union
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^-?\d+$")


class InvalidQueryError(ValueError):
    """Client supplied query parameters that cannot be honoured"""
    pass


class InvalidFrameCountError(InvalidQueryError):
    """Requested frame count is not in the allow-list"""
    pass


def _iso_to_millis(value: str) -> int:
    parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def parse_acquisition_datetime(value: Union[int, str]) -> int:
    """
    Convert an acquisition datetime from the wire to epoch milliseconds

    Accepted forms are an integer number of epoch milliseconds (or a string of
    digits) and an ISO-8601 date-time; naive values are taken as UTC.

    Raises:
        ValueError: for any other representation
    """
    if isinstance(value, bool):
        raise ValueError("aquisition_datetime must be ISO-8601 or epoch milliseconds")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        # Compact positional strings (DDMMYYYYHHMM) are all digits but far too short for millis
        if _DIGITS.match(text) and len(text.lstrip('-')) >= 13:
            return int(text)
        if "-" in text:
            try:
                return _iso_to_millis(text)
            except ValueError:
                pass
    raise ValueError("aquisition_datetime must be ISO-8601 or epoch milliseconds")


def parse_timestamp(value: Optional[Union[int, str]], name: str = "timestamp") -> Optional[int]:
    """
    Parse a time query parameter (epoch ms digits or ISO-8601) to epoch milliseconds

    Returns:
        None when the parameter is absent

    Raises:
        InvalidQueryError: malformed value
    """
    if value is None or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if _DIGITS.match(text):
        return int(text)
    try:
        return _iso_to_millis(text)
    except ValueError:
        raise InvalidQueryError(f"Invalid {name}: expected epoch milliseconds or ISO-8601, got '{value}'")


def validate_time_range(start: Optional[int], end: Optional[int]) -> Tuple[bool, Optional[str]]:
    """
    Validate an inclusive [start, end] acquisition-time range

    Args:
        start: Start in epoch ms
        end: End in epoch ms

    Returns:
        Tuple of (is_valid, error_message)
    """
    if start is None or end is None:
        return False, "Both start and end are required"

    if start > end:
        return False, "Start must be before end"

    return True, None


def validate_bbox(bbox: Optional[Sequence[float]]) -> Tuple[bool, Optional[str]]:
    """
    Validate bounding box coordinates

    Args:
        bbox: List of [west, south, east, north]

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not bbox or len(bbox) != 4:
        return False, "bbox must contain exactly 4 values [west, south, east, north]"

    west, south, east, north = bbox

    # Validate longitude range
    if not (-180 <= west <= 180) or not (-180 <= east <= 180):
        return False, "Longitude must be between -180 and 180"

    # Validate latitude range
    if not (-90 <= south <= 90) or not (-90 <= north <= 90):
        return False, "Latitude must be between -90 and 90"

    if west > east:
        return False, "West must not be greater than east"

    if south > north:
        return False, "South must not be greater than north"

    return True, None


def parse_bbox(value: Optional[str]) -> Optional[List[float]]:
    """
    Parse a comma separated "west,south,east,north" query parameter

    Raises:
        InvalidQueryError: malformed or out-of-range box
    """
    if not value:
        return None
    try:
        bbox = [float(part) for part in value.split(",")]
    except ValueError:
        raise InvalidQueryError("bbox must be four comma separated numbers")
    is_valid, error = validate_bbox(bbox)
    if not is_valid:
        raise InvalidQueryError(error)
    return bbox


def validate_frame_count(count: int, allowed: Sequence[int]) -> Tuple[bool, Optional[str]]:
    """
    Validate the number of most-recent records requested

    Args:
        count: Requested frame count
        allowed: Allow-list of frame counts

    Returns:
        Tuple of (is_valid, error_message)
    """
    if count not in allowed:
        allowed_text = ", ".join(str(c) for c in allowed)
        return False, f"Invalid count {count}. Allowed values: {allowed_text}"

    return True, None


def validate_grid_size(grid_size: float) -> Tuple[bool, Optional[str]]:
    """
    Validate a geographic grid cell size in degrees
    """
    if grid_size <= 0 or grid_size > 90:
        return False, "gridSize must be greater than 0 and at most 90 degrees"

    return True, None
