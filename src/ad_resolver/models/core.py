# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Core data models for VAST ad resolution.

These models are the plain records exchanged between the resolution engine,
the creative model and the player integration layer:
- Creative kinds and companion requirements
- Tracking events and derived tracking points
- Media files and media selection targets
- Static (companion / non-linear) resources
"""

from enum import Enum
from typing import Any, Optional

from lxml import etree
from pydantic import BaseModel, ConfigDict, Field

from ..xml_utils import stripped_text


# =============================================================================
# Enums
# =============================================================================


class CreativeKind(str, Enum):
    """Creative element types found inside a <Creative>."""

    LINEAR = "Linear"
    COMPANION = "Companion"
    NON_LINEAR = "NonLinear"


class CompanionsRequired(str, Enum):
    """Value of the CompanionAds ``required`` attribute."""

    ALL = "all"
    ANY = "any"
    NONE = "none"


class AdContentType(str, Enum):
    """Kind of content an <Ad> element declares."""

    INLINE = "InLine"
    WRAPPER = "Wrapper"
    EMPTY = "empty"


# =============================================================================
# Tracking
# =============================================================================


class TrackingEvent(BaseModel):
    """One subscribed tracking URL.

    ``event`` is the registry key, which for progress events is the compound
    ``progress-<offset>`` form; ``offset`` keeps the raw attribute value.
    """

    url: str
    event: str
    offset: Optional[str] = None


class TrackingPoint(BaseModel):
    """A position in linear playback where ``track()`` should be called."""

    event: str
    offset: str  # "start", "end" or "NN%"

    @property
    def sort_value(self) -> float:
        """Numeric position used for ordering (start = 0, end = 100)."""
        if self.offset == "start":
            return 0.0
        if self.offset in ("end", "complete"):
            return 100.0
        try:
            return float(self.offset.rstrip("%"))
        except ValueError:
            return 0.0


# =============================================================================
# Media
# =============================================================================


class MediaTarget(BaseModel):
    """Player characteristics used to pick the best media file."""

    width: float
    height: float
    bitrate: Optional[float] = None


class MediaFile(BaseModel):
    """A <MediaFile> entry.

    Every XML attribute is kept verbatim (as a string) alongside ``src``:
    delivery, type, bitrate, minBitrate, maxBitrate, width, height, scalable,
    maintainAspectRatio, codec, ...
    """

    model_config = ConfigDict(extra="allow")

    src: str

    @classmethod
    def from_element(cls, element: etree._Element) -> "MediaFile":
        """Build a media file record from a <MediaFile> element."""
        attributes = {str(k): str(v) for k, v in element.attrib.items() if k != "src"}
        return cls(src=stripped_text(element), **attributes)

    @property
    def attributes(self) -> dict[str, Any]:
        """All declared attributes except ``src``."""
        return dict(self.model_extra or {})

    def attribute(self, name: str, default: Any = None) -> Any:
        """Get a raw attribute value."""
        return (self.model_extra or {}).get(name, default)

    def _number(self, name: str) -> Optional[float]:
        value = self.attribute(name)
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @property
    def width(self) -> Optional[float]:
        return self._number("width")

    @property
    def height(self) -> Optional[float]:
        return self._number("height")

    @property
    def effective_bitrate(self) -> Optional[float]:
        """Declared bitrate, falling back to maxBitrate for adaptive files."""
        bitrate = self._number("bitrate")
        if not bitrate:
            bitrate = self._number("maxBitrate")
        return bitrate or None


# =============================================================================
# Static creatives
# =============================================================================


class StaticResources(BaseModel):
    """Renderable resources of a Companion or NonLinear creative."""

    iframe: Optional[str] = None
    html: Optional[str] = None
    images: dict[str, str] = Field(default_factory=dict)  # creativeType -> URL
