# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Creative elements of a VAST ad.

Three creative kinds are supported:
- LinearCreative: the video itself (media files, duration, playback tracking)
- CompanionCreative: banners shown next to the video
- NonLinearCreative: overlays shown on top of the video

Every creative embeds a TrackingRegistry. Companion and linear registries
belong to the creative; all NonLinear creatives of one ad share the ad's
non-linear registry because the source format wraps them in a single
<TrackingEvents> element.

When a wrapper is resolved, the creatives it declared are copied into the
target ad and the target's own creatives are merged on top of them with
``augment`` (the argument is the higher-precedence layer).
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from lxml import etree

from ..xml_utils import first_descendant, iter_descendants, stripped_text
from .core import CreativeKind, MediaFile, MediaTarget, StaticResources, TrackingPoint
from .media import select_best_media
from .timecode import (
    TIMECODE_ATTRIBUTES,
    Seconds,
    percentage_value,
    timecode_from_string,
    timecode_to_string,
)
from .tracking import TrackingRegistry

if TYPE_CHECKING:
    from .ad import AdNode

logger = logging.getLogger(__name__)

LINEAR_TRACKING_EVENTS = (
    "start",
    "firstQuartile",
    "midpoint",
    "thirdQuartile",
    "complete",
    "progress",
    "skip",
)

_FIXED_OFFSETS = {
    "start": "start",
    "firstQuartile": "25%",
    "midpoint": "50%",
    "thirdQuartile": "75%",
    "complete": "end",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class Creative(ABC):
    """Capabilities shared by every creative kind."""

    kind: CreativeKind

    def __init__(
        self,
        tracking: TrackingRegistry,
        attributes: Optional[dict[str, str]] = None,
        click_through: Optional[str] = None,
    ):
        self.tracking = tracking
        self.attributes: dict[str, str] = dict(attributes or {})
        self.click_through = click_through

    def attribute(self, name: str, default: Any = None) -> Any:
        """Return the value of an attribute of the creative element.

        Timecode attributes (skipoffset, duration, offset,
        minSuggestedDuration) are converted to seconds.

        Args:
            name: The attribute name
            default: Value to return if the attribute isn't present

        Returns:
            The attribute value, or ``default`` if unset
        """
        if name not in self.attributes:
            return default

        value = self.attributes[name]
        if name in TIMECODE_ATTRIBUTES:
            return timecode_from_string(value)
        return value

    def get_click_through(self) -> Optional[str]:
        """URL to send the user to when the creative is clicked."""
        return self.click_through

    def track(self, event: str, position: Seconds = 0, asset_uri: str = "") -> list[str]:
        """Report a trackable event.

        Trackable events include click, creativeView, start, firstQuartile,
        midpoint, thirdQuartile, complete, mute, unmute, pause, rewind,
        resume, fullscreen, exitFullscreen, expand, collapse,
        acceptInvitation, close, progress-<offset> and skip. Playback
        progress events should only be reported for linear creatives, at the
        positions returned by ``LinearCreative.get_tracking_points``.

        Only events the document asked to track cause any requests.

        Args:
            event: The event key to report
            position: Seconds into ad playback where the event occurred
            asset_uri: The asset URI being played

        Returns:
            The beacon URLs that were sent
        """
        return self.tracking.track(
            event,
            {
                "CONTENTPLAYHEAD": timecode_to_string(position),
                "ASSETURI": asset_uri,
            },
        )

    def _augment_common(self, other: "Creative") -> None:
        self.attributes.update(other.attributes)
        self.click_through = other.click_through or self.click_through

    @abstractmethod
    def copy(self, ad: "AdNode") -> "Creative":
        """Return an independent copy of this creative bound to ``ad``."""

    @abstractmethod
    def augment(self, other: "Creative") -> None:
        """Merge ``other`` into this creative, ``other`` taking precedence."""


# =============================================================================
# Linear
# =============================================================================


class LinearCreative(Creative):
    """A <Linear> creative: the video ad itself."""

    kind = CreativeKind.LINEAR

    def __init__(
        self,
        tracking: TrackingRegistry,
        attributes: Optional[dict[str, str]] = None,
        click_through: Optional[str] = None,
        duration: Optional[Seconds] = None,
        media_files: Optional[list[MediaFile]] = None,
    ):
        super().__init__(tracking, attributes, click_through)
        self.duration = duration
        self.media_files: list[MediaFile] = list(media_files or [])

    @classmethod
    def from_element(cls, ad: "AdNode", element: etree._Element) -> "LinearCreative":
        """Parse a <Linear> element."""
        tracking = TrackingRegistry.from_element(element, ad)
        click_through = None

        clicks = first_descendant(element, "VideoClicks")
        if clicks is not None:
            through = first_descendant(clicks, "ClickThrough")
            if through is not None:
                click_through = stripped_text(through)
            for tracker in iter_descendants(clicks, "ClickTracking"):
                tracking.add_click_tracking(stripped_text(tracker))

        duration = None
        duration_element = first_descendant(element, "Duration")
        if duration_element is not None:
            duration = _parse_duration(stripped_text(duration_element))

        media_files: list[MediaFile] = []
        medias = first_descendant(element, "MediaFiles")
        if medias is not None:
            media_files = [MediaFile.from_element(m) for m in iter_descendants(medias, "MediaFile")]

        return cls(
            tracking=tracking,
            attributes=dict(element.attrib),
            click_through=click_through,
            duration=duration,
            media_files=media_files,
        )

    def get_duration(self) -> Optional[Seconds]:
        """Duration of the linear in seconds, or None if not declared."""
        return self.duration

    def get_all_medias(self) -> list[MediaFile]:
        """All media files so the caller can decide which one to play."""
        return self.media_files

    def get_best_media(self, target: Union[MediaTarget, dict[str, Any]]) -> Optional[MediaFile]:
        """Best guess at the media file to play for the given player.

        Args:
            target: Player ``width`` and ``height`` and optional ``bitrate``.
                Without a bitrate the highest bitrate wins ties, otherwise
                the closest one does.

        Returns:
            A media file, or None if no media file is available
        """
        if isinstance(target, dict):
            target = MediaTarget(**target)
        return select_best_media(self.media_files, target)

    def get_tracking_points(self) -> list[TrackingPoint]:
        """Positions in playback where ``track()`` should be called.

        Each point carries the event key and an offset that is ``"start"``,
        ``"end"`` or a percentage (``"NN%"``). Only events the document
        explicitly tracks are included; several events may share an offset.

        Returns:
            Points sorted by offset, start first and end last
        """
        points: list[TrackingPoint] = []

        for entry in self.tracking.get_events_of_types(LINEAR_TRACKING_EVENTS):
            event = entry.event
            if event in _FIXED_OFFSETS:
                offset = _FIXED_OFFSETS[event]
            elif event == "skip":
                offset = self._as_percentage(self.attribute("skipoffset", 0))
            else:
                if not entry.offset:
                    continue
                offset = self._as_percentage(timecode_from_string(entry.offset))

            if offset is None:
                logger.debug(f"Cannot place tracking event '{event}' without a duration")
                continue
            points.append(TrackingPoint(event=event, offset=offset))

        return sorted(points, key=lambda p: p.sort_value)

    def _as_percentage(self, value: Union[Seconds, str, None]) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, str):
            percent = percentage_value(value)
            return f"{_round_half_up(percent)}%" if percent is not None else None
        if not self.duration:
            return None
        return f"{_round_half_up(value / self.duration * 100)}%"

    def copy(self, ad: "AdNode") -> "LinearCreative":
        return LinearCreative(
            tracking=self.tracking.copy(ad),
            attributes=self.attributes,
            click_through=self.click_through,
            duration=self.duration,
            media_files=[m.model_copy(deep=True) for m in self.media_files],
        )

    def augment(self, other: "LinearCreative") -> None:
        """Merge tracking events and creative data of ``other`` into this linear."""
        self._augment_common(other)
        if other.duration is not None:
            self.duration = other.duration
        if other.media_files:
            self.media_files = [m.model_copy(deep=True) for m in other.media_files]
        self.tracking.augment(other.tracking)


def _parse_duration(text: str) -> Optional[Seconds]:
    value = timecode_from_string(text)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            logger.warning(f"Ignoring unparseable linear duration '{text}'")
            return None
    return value


# =============================================================================
# Static (Companion / NonLinear)
# =============================================================================


class StaticCreative(Creative):
    """Shared behaviour of companion banners and non-linear overlays."""

    # Prefix of the click elements: CompanionClickThrough, NonLinearClickTracking, ...
    click_prefix: str = ""

    def __init__(
        self,
        tracking: TrackingRegistry,
        attributes: Optional[dict[str, str]] = None,
        click_through: Optional[str] = None,
        resources: Optional[StaticResources] = None,
    ):
        super().__init__(tracking, attributes, click_through)
        self.resources = resources or StaticResources()

    @staticmethod
    def _parse_resources(element: etree._Element) -> StaticResources:
        resources = StaticResources()

        iframe = first_descendant(element, "IFrameResource")
        if iframe is not None:
            resources.iframe = stripped_text(iframe)

        html = first_descendant(element, "HTMLResource")
        if html is not None:
            resources.html = stripped_text(html)

        for image in iter_descendants(element, "StaticResource"):
            resources.images[image.get("creativeType", "")] = stripped_text(image)

        return resources

    def _extract_clicks(self, element: etree._Element) -> None:
        through = first_descendant(element, f"{self.click_prefix}ClickThrough")
        if through is not None:
            self.click_through = stripped_text(through)

        for tracker in iter_descendants(element, f"{self.click_prefix}ClickTracking"):
            self.tracking.add_click_tracking(stripped_text(tracker))

    def get_all_resources(self) -> StaticResources:
        """Every resource that can be used to render this creative."""
        return self.resources

    def augment(self, other: "StaticCreative") -> None:
        """Merge tracking events and resources of ``other`` into this creative."""
        self._augment_common(other)
        # Non-linears of one ad already share a single registry
        if other.tracking is not self.tracking:
            self.tracking.augment(other.tracking)
        self.resources.iframe = other.resources.iframe or self.resources.iframe
        self.resources.html = other.resources.html or self.resources.html
        self.resources.images.update(other.resources.images)


class CompanionCreative(StaticCreative):
    """A <Companion> banner."""

    kind = CreativeKind.COMPANION
    click_prefix = "Companion"

    def __init__(
        self,
        tracking: TrackingRegistry,
        attributes: Optional[dict[str, str]] = None,
        click_through: Optional[str] = None,
        resources: Optional[StaticResources] = None,
        alt_text: str = "",
    ):
        super().__init__(tracking, attributes, click_through, resources)
        self.alt_text = alt_text

    @classmethod
    def from_element(cls, ad: "AdNode", element: etree._Element) -> "CompanionCreative":
        """Parse a <Companion> element."""
        creative = cls(
            tracking=TrackingRegistry.from_element(element, ad),
            attributes=dict(element.attrib),
            resources=cls._parse_resources(element),
        )
        creative._extract_clicks(element)

        alt_text = first_descendant(element, "AltText")
        if alt_text is not None:
            creative.alt_text = stripped_text(alt_text)

        return creative

    def get_alt_text(self) -> str:
        return self.alt_text

    def copy(self, ad: "AdNode") -> "CompanionCreative":
        return CompanionCreative(
            tracking=self.tracking.copy(ad),
            attributes=self.attributes,
            click_through=self.click_through,
            resources=self.resources.model_copy(deep=True),
            alt_text=self.alt_text,
        )

    def augment(self, other: "CompanionCreative") -> None:
        super().augment(other)
        self.alt_text = other.alt_text or self.alt_text


class NonLinearCreative(StaticCreative):
    """A <NonLinear> overlay. Tracking is shared with the ad's other non-linears."""

    kind = CreativeKind.NON_LINEAR
    click_prefix = "NonLinear"

    @classmethod
    def from_element(cls, ad: "AdNode", element: etree._Element) -> "NonLinearCreative":
        """Parse a <NonLinear> element."""
        creative = cls(
            tracking=ad.non_linear_tracking,
            attributes=dict(element.attrib),
            resources=cls._parse_resources(element),
        )
        creative._extract_clicks(element)
        return creative

    def copy(self, ad: "AdNode") -> "NonLinearCreative":
        return NonLinearCreative(
            tracking=ad.non_linear_tracking,
            attributes=self.attributes,
            click_through=self.click_through,
            resources=self.resources.model_copy(deep=True),
        )


# =============================================================================
# Construction and matching
# =============================================================================


_BUILDERS: dict[CreativeKind, Callable[["AdNode", etree._Element], Creative]] = {
    CreativeKind.LINEAR: LinearCreative.from_element,
    CreativeKind.COMPANION: CompanionCreative.from_element,
    CreativeKind.NON_LINEAR: NonLinearCreative.from_element,
}


def create_creative(kind: CreativeKind, ad: "AdNode", element: etree._Element) -> Creative:
    """Build the creative of the given kind from its XML element."""
    return _BUILDERS[kind](ad, element)


def creatives_match(existing: Creative, candidate: Creative) -> bool:
    """Decide whether two static creatives describe the same slot.

    VAST gives no reliable key for pairing a wrapper's companion (or
    non-linear) with the one in the inline response. Two creatives match when
    every one of id, width and height that both declare is equal, and they
    share at least an id or a full width+height.
    """
    def both(name: str) -> bool:
        return name in existing.attributes and name in candidate.attributes

    for name in ("id", "width", "height"):
        if both(name) and existing.attributes[name] != candidate.attributes[name]:
            return False

    return both("id") or (both("width") and both("height"))
