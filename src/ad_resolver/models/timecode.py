# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Conversions between VAST timecodes (HH:MM:SS[.mmm]) and seconds."""

from typing import Union

Seconds = Union[int, float]

# Attributes whose values are timecodes and get converted on read
TIMECODE_ATTRIBUTES = frozenset({"skipoffset", "duration", "offset", "minSuggestedDuration"})


def timecode_from_string(value: str) -> Union[Seconds, str]:
    """Convert a ``HH:MM:SS[.mmm]`` timecode to seconds.

    Anything that is not a timecode (for example ``"25%"``) is returned
    unchanged so the caller can decide how to interpret it.

    Args:
        value: Raw attribute or element text

    Returns:
        Number of seconds, or the input string if it is not a timecode
    """
    if ":" not in value:
        return value

    parts = value.strip().split(":")
    if len(parts) != 3:
        return value

    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = float(parts[2])
    except ValueError:
        return value

    total = hours * 3600 + minutes * 60 + seconds
    if total.is_integer():
        return int(total)
    return total


def timecode_to_string(seconds: Seconds) -> str:
    """Format a number of seconds as ``HH:MM:SS`` (``HH:MM:SS.mmm`` when fractional)."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    remainder = seconds % 60

    if float(remainder).is_integer():
        return f"{hours:02d}:{minutes:02d}:{int(remainder):02d}"
    return f"{hours:02d}:{minutes:02d}:{remainder:06.3f}"


def percentage_value(offset: str) -> Union[float, None]:
    """Return the numeric part of a ``"NN%"`` offset, or None if it is not one."""
    offset = offset.strip()
    if not offset.endswith("%"):
        return None
    try:
        return float(offset[:-1])
    except ValueError:
        return None
