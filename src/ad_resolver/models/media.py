# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Best-fit media file selection for linear creatives."""

import math
from typing import Optional, Sequence

from .core import MediaFile, MediaTarget


def _prefer_challenger(
    current: MediaFile,
    challenger: MediaFile,
    target: MediaTarget,
) -> bool:
    """Break a resolution tie between two equally distant files.

    Order: declares a bitrate > closer to the target bitrate > higher bitrate.
    """
    current_bitrate = current.effective_bitrate
    challenger_bitrate = challenger.effective_bitrate

    if challenger_bitrate and not current_bitrate:
        return True
    if target.bitrate and current_bitrate and challenger_bitrate:
        return abs(challenger_bitrate - target.bitrate) < abs(current_bitrate - target.bitrate)
    return (challenger_bitrate or 0) > (current_bitrate or 0)


def select_best_media(
    media_files: Sequence[MediaFile],
    target: MediaTarget,
) -> Optional[MediaFile]:
    """Pick the media file that best fits the player.

    The file whose declared resolution is closest (Euclidean distance) to the
    target wins; ties are settled on bitrate. Files without a numeric width
    and height cannot be placed and are never chosen.

    Args:
        media_files: Candidate files in document order
        target: Player width/height and optional target bitrate

    Returns:
        The chosen file, or None if no file qualifies
    """
    best_distance = math.inf
    best: Optional[MediaFile] = None

    for media in media_files:
        if media.width is None or media.height is None:
            continue

        distance = math.hypot(target.width - media.width, target.height - media.height)

        if distance < best_distance:
            best_distance = distance
            best = media
        elif distance == best_distance and best is not None:
            if _prefer_challenger(best, media, target):
                best = media

    return best
