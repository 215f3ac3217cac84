# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Tracking event registry and beacon notification.

A registry maps an event key to the URLs subscribed to it. Progress events
are keyed as ``progress-<offset>`` so several progress points can coexist;
asking for ``progress`` matches all of them.
"""

import logging
import random
from typing import TYPE_CHECKING, Any, Iterable, Optional
from urllib.parse import quote

from lxml import etree

from ..clients.beacon_sender import BeaconSender, get_default_sender
from ..xml_utils import iter_descendants, local_name, stripped_text
from .core import TrackingEvent

if TYPE_CHECKING:
    from .ad import AdNode

logger = logging.getLogger(__name__)

PROGRESS_EVENT = "progress"
CLICK_EVENT = "click"
CREATIVE_VIEW_EVENT = "creativeView"

# Characters encodeURIComponent leaves untouched
_URI_COMPONENT_SAFE = "-_.!~*'()"


def cache_buster() -> str:
    """Eight random digits, zero padded, as the VAST CACHEBUSTING macro requires."""
    return f"{random.randint(0, 99999999):08d}"


def expand_macros(macros: Optional[dict[str, Any]]) -> dict[str, str]:
    """Turn ``{"NAME": value}`` into ``{"[NAME]": percent-encoded value}``."""
    expanded: dict[str, str] = {}
    for name, value in (macros or {}).items():
        expanded[f"[{name}]"] = quote("" if value is None else str(value), safe=_URI_COMPONENT_SAFE)
    return expanded


class TrackingRegistry:
    """Subscribed tracking URLs for one creative scope.

    Key behaviors:
    - Entries under the same key keep document order; duplicates are kept
    - ``augment`` concatenates key-wise, ``copy`` gives an independent registry
    - Tracking ``creativeView`` also sends the impressions of the owning ad and
      of every wrapper above it that has not sent one yet

    Example:
        registry = TrackingRegistry.from_element(linear_element, ad)
        registry.track("start", {"CONTENTPLAYHEAD": "00:00:00"})
    """

    def __init__(
        self,
        ad: Optional["AdNode"] = None,
        sender: Optional[BeaconSender] = None,
    ):
        """Initialize an empty registry.

        Args:
            ad: The ad this registry belongs to
            sender: Beacon sender; defaults to the owning document's sender
        """
        self.events: dict[str, list[TrackingEvent]] = {}
        self._ad = ad
        self._sender = sender

    @classmethod
    def from_element(
        cls,
        root: Optional[etree._Element],
        ad: Optional["AdNode"] = None,
        sender: Optional[BeaconSender] = None,
    ) -> "TrackingRegistry":
        """Extract tracking events from an XML fragment.

        Args:
            root: A <TrackingEvents> element, or an element containing exactly
                one <TrackingEvents> descendant
            ad: The ad holding the element
            sender: Beacon sender override

        Returns:
            A registry, empty when no unambiguous <TrackingEvents> was found
        """
        registry = cls(ad=ad, sender=sender)
        if root is None:
            return registry

        if local_name(root) != "TrackingEvents":
            containers = list(iter_descendants(root, "TrackingEvents"))
            if len(containers) != 1:
                return registry
            root = containers[0]

        for track in iter_descendants(root, "Tracking"):
            event = track.get("event")
            if not event:
                continue

            offset = None
            if event == PROGRESS_EVENT:
                offset = track.get("offset")
                event = f"{PROGRESS_EVENT}-{offset}"

            registry.add(event, stripped_text(track), offset)

        return registry

    @property
    def ad(self) -> Optional["AdNode"]:
        """The ad owning this registry."""
        return self._ad

    @property
    def sender(self) -> BeaconSender:
        if self._sender is not None:
            return self._sender
        ad = self.ad
        if ad is not None and ad.document.beacon_sender is not None:
            return ad.document.beacon_sender
        return get_default_sender()

    def add(self, event: str, url: str, offset: Optional[str] = None) -> None:
        """Subscribe ``url`` to ``event``."""
        self.events.setdefault(event, []).append(
            TrackingEvent(url=url, event=event, offset=offset)
        )

    def add_click_tracking(self, url: str) -> None:
        """Add a click tracking URL.

        Click trackers live in <VideoClicks> / <*ClickTracking> rather than in
        <TrackingEvents>, so they are registered separately.
        """
        self.add(CLICK_EVENT, url)

    def copy(self, ad: Optional["AdNode"] = None) -> "TrackingRegistry":
        """Return an identical registry bound to ``ad``."""
        registry = TrackingRegistry(ad=ad, sender=self._sender)
        registry.events = {event: list(entries) for event, entries in self.events.items()}
        return registry

    def augment(self, other: "TrackingRegistry") -> None:
        """Append every event of ``other`` to this registry."""
        for event, entries in other.events.items():
            self.events[event] = self.events.get(event, []) + list(entries)

    def has_event(self, event: str) -> bool:
        return bool(self.events.get(event))

    def get_events_of_types(self, types: Iterable[str]) -> list[TrackingEvent]:
        """Return all events whose key is in ``types``.

        Including ``progress`` in ``types`` matches every ``progress-*`` key.

        Args:
            types: Event names to look for

        Returns:
            The matching events, grouped by key in registration order
        """
        wanted = set(types)
        include_progress = PROGRESS_EVENT in wanted
        result: list[TrackingEvent] = []

        for event, entries in self.events.items():
            if event in wanted or (include_progress and event.startswith(f"{PROGRESS_EVENT}-")):
                result.extend(entries)

        return result

    def track(self, event: str, macros: Optional[dict[str, Any]] = None) -> list[str]:
        """Notify every URL subscribed to ``event``.

        Args:
            event: Event key to notify
            macros: Macro values keyed by bare name (``CONTENTPLAYHEAD``, ...)

        Returns:
            The URLs that were dispatched, after macro substitution
        """
        entries = self.events.get(event)
        if not entries:
            return []

        urls = [entry.url for entry in entries]
        replacements = expand_macros(macros)

        # First creative view counts as the impression for this ad and for
        # every wrapper it was reached through
        if event == CREATIVE_VIEW_EVENT:
            ad = self.ad
            while ad is not None:
                if not ad.has_sent_impression():
                    ad.mark_impression_sent()
                    urls.extend(ad.own_impression_urls)
                ad = ad.parent

        sender = self.sender
        fired: list[str] = []
        for url in urls:
            replacements["[CACHEBUSTING]"] = cache_buster()
            for macro, value in replacements.items():
                url = url.replace(macro, value)
            sender.fire(url)
            fired.append(url)

        logger.debug(f"Tracked '{event}' with {len(fired)} beacon(s)")
        return fired

    def __len__(self) -> int:
        return sum(len(entries) for entries in self.events.values())
