# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Serializable snapshots of resolved ads for the CLI and HTTP API."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from .ad import AdNode
from .core import MediaTarget, TrackingPoint
from .timecode import Seconds


class MediaSummary(BaseModel):
    """A media file as reported to API clients."""

    src: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class StaticCreativeSummary(BaseModel):
    """A companion or non-linear creative."""

    attributes: dict[str, str] = Field(default_factory=dict)
    click_through: Optional[str] = None
    iframe: Optional[str] = None
    html: Optional[str] = None
    images: dict[str, str] = Field(default_factory=dict)
    alt_text: Optional[str] = None


class LinearSummary(BaseModel):
    """The linear creative of an ad."""

    duration: Optional[Seconds] = None
    skip_offset: Optional[Any] = None
    click_through: Optional[str] = None
    best_media: Optional[MediaSummary] = None
    media_files: list[MediaSummary] = Field(default_factory=list)
    tracking_points: list[TrackingPoint] = Field(default_factory=list)


class AdSummary(BaseModel):
    """Everything a player needs to know about the ad chosen for playback."""

    ad_id: Optional[str] = None
    sequence: Optional[int] = None
    tags: dict[str, str] = Field(default_factory=dict)
    impression_urls: list[str] = Field(default_factory=list)
    companions_required: str = "none"
    linear: Optional[LinearSummary] = None
    companions: list[StaticCreativeSummary] = Field(default_factory=list)
    non_linears: list[StaticCreativeSummary] = Field(default_factory=list)
    pod_size: int = 1


def summarize_ad(ad: AdNode, target: MediaTarget) -> AdSummary:
    """Build a summary of ``ad``, choosing its media file for ``target``.

    Args:
        ad: A resolved ad, usually ``document.get_best_ad()``
        target: Player size and bitrate used for media selection

    Returns:
        The summary, including how many ads follow it in its pod
    """
    linear = None
    if ad.linear is not None:
        best = ad.linear.get_best_media(target)
        linear = LinearSummary(
            duration=ad.linear.get_duration(),
            skip_offset=ad.linear.attribute("skipoffset"),
            click_through=ad.linear.get_click_through(),
            best_media=MediaSummary(src=best.src, attributes=best.attributes) if best else None,
            media_files=[
                MediaSummary(src=m.src, attributes=m.attributes)
                for m in ad.linear.get_all_medias()
            ],
            tracking_points=ad.linear.get_tracking_points(),
        )

    pod_size = 1
    following = ad.get_next_ad()
    while following is not None:
        pod_size += 1
        following = following.get_next_ad()

    return AdSummary(
        ad_id=ad.ad_id,
        sequence=ad.sequence,
        tags=dict(ad.properties),
        impression_urls=ad.impression_urls,
        companions_required=ad.get_companions_required().value,
        linear=linear,
        companions=[
            StaticCreativeSummary(
                attributes=c.attributes,
                click_through=c.get_click_through(),
                iframe=c.resources.iframe,
                html=c.resources.html,
                images=c.resources.images,
                alt_text=c.get_alt_text() or None,
            )
            for c in ad.get_companions()
        ],
        non_linears=[
            StaticCreativeSummary(
                attributes=n.attributes,
                click_through=n.get_click_through(),
                iframe=n.resources.iframe,
                html=n.resources.html,
                images=n.resources.images,
            )
            for n in ad.get_non_linears()
        ],
        pod_size=pod_size,
    )
