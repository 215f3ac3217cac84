# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Ad documents and the ads they contain.

An AdDocument is one parsed VAST response; each <Ad> in it becomes an
AdNode. Ads reached through a wrapper start as copies of the wrapper's data
(creatives, tracking, tags) and layer their own declarations on top.
"""

import asyncio
import logging
import weakref
from typing import Any, Callable, Iterator, Optional

from lxml import etree

from ..clients.beacon_sender import BeaconSender
from ..xml_utils import (
    first_child_element,
    first_descendant,
    iter_child_elements,
    iter_descendants,
    local_name,
    stripped_text,
    trimmed_text,
)
from .core import AdContentType, CompanionsRequired, CreativeKind
from .creatives import (
    CompanionCreative,
    LinearCreative,
    NonLinearCreative,
    StaticCreative,
    create_creative,
    creatives_match,
)
from .tracking import TrackingRegistry

logger = logging.getLogger(__name__)

# Children of <InLine>/<Wrapper> that are not plain ad tags
_NON_TAG_ELEMENTS = frozenset({"Creatives", "InLine", "Wrapper", "Impression", "VASTAdTagURI", "Error"})

AdsAvailableCallback = Callable[["AdDocument"], Any]
ErrorCallback = Callable[[Exception], Any]


class AdNode:
    """A single <Ad> of a VAST response.

    Until a wrapper ad has been resolved, its data is partial: it holds only
    what the wrapper itself declared. Once the target resolves, ``current()``
    returns the ad chosen from the target document, which carries the merged
    data of both levels.
    """

    def __init__(
        self,
        document: "AdDocument",
        element: etree._Element,
        parent: Optional["AdNode"] = None,
    ):
        """Build an ad from its <Ad> element.

        Args:
            document: The document this ad belongs to
            element: The <Ad> element
            parent: The wrapper ad whose target document holds this ad
        """
        self.document = document
        self.pod: "AdDocument" = document
        self._parent_ref = weakref.ref(parent) if parent is not None else None

        self.ad_id: Optional[str] = element.get("id")
        self.sequence: Optional[int] = None
        self.content_type = AdContentType.EMPTY
        self.loaded = True
        self.linear: Optional[LinearCreative] = None
        self.companions: list[CompanionCreative] = []
        self.non_linears: list[NonLinearCreative] = []
        # TODO: enforce companions_required once players can reject an ad
        self.companions_required = CompanionsRequired.NONE
        self.non_linear_tracking: Optional[TrackingRegistry] = None
        self.inherited_impression_urls: list[str] = []
        self.own_impression_urls: list[str] = []
        self.properties: dict[str, str] = {}
        self.current_pod_ad: "AdNode" = self
        self.sent_impression = False
        self.wrapper_element: Optional[etree._Element] = None

        if parent is not None:
            self._inherit(parent)

        if self.non_linear_tracking is None:
            self.non_linear_tracking = TrackingRegistry(ad=self)

        self._parse(element)

    # =========================================================================
    # Construction
    # =========================================================================

    def _inherit(self, parent: "AdNode") -> None:
        """Copy creatives, tracking and tags from the wrapper that led here."""
        self.companions_required = parent.companions_required
        # Must exist before non-linears are copied, they bind to it
        self.non_linear_tracking = parent.non_linear_tracking.copy(self)
        self.linear = parent.linear.copy(self) if parent.linear else None
        self.companions = [c.copy(self) for c in parent.companions]
        self.non_linears = [n.copy(self) for n in parent.non_linears]
        self.properties = dict(parent.properties)
        self.inherited_impression_urls = list(parent.impression_urls)

    def _parse(self, element: etree._Element) -> None:
        sequence = element.get("sequence")
        if sequence is not None:
            try:
                self.sequence = int(sequence.strip())
            except ValueError:
                logger.warning(f"Ignoring non-numeric ad sequence '{sequence}'")

        body = first_descendant(element, "InLine")
        if body is not None:
            self.content_type = AdContentType.INLINE
        else:
            # The engine fetches the wrapped response; only local data is read here
            self.loaded = False
            body = first_descendant(element, "Wrapper")
            if body is None:
                return
            self.content_type = AdContentType.WRAPPER
            self.wrapper_element = body

        for child in iter_child_elements(body):
            name = local_name(child)
            if name not in _NON_TAG_ELEMENTS:
                self.properties[name] = trimmed_text(child)

        for impression in iter_descendants(body, "Impression"):
            url = stripped_text(impression)
            if url:
                self.own_impression_urls.append(url)

        creatives = first_descendant(body, "Creatives")
        if creatives is None:
            return

        for creative_element in iter_descendants(creatives, "Creative"):
            creative = first_child_element(creative_element)
            if creative is None:
                continue

            name = local_name(creative)
            if name == "Linear":
                linear = create_creative(CreativeKind.LINEAR, self, creative)
                if self.linear:
                    self.linear.augment(linear)
                else:
                    self.linear = linear
            elif name == "CompanionAds":
                required = creative.get("required")
                if required:
                    try:
                        self.companions_required = CompanionsRequired(required.strip().lower())
                    except ValueError:
                        logger.warning(f"Ignoring unknown CompanionAds required='{required}'")
                self._add_static_creatives(CreativeKind.COMPANION, creative, self.companions)
            elif name == "NonLinearAds":
                self.non_linear_tracking.augment(TrackingRegistry.from_element(creative, self))
                self._add_static_creatives(CreativeKind.NON_LINEAR, creative, self.non_linears)

    def _add_static_creatives(
        self,
        kind: CreativeKind,
        container: etree._Element,
        existing: list,
    ) -> None:
        """Merge the companions / non-linears of one <Creative> into ``existing``.

        New items are only matched against entries that were present before
        this <Creative> started, never against their own siblings.
        """
        baseline = list(existing)

        for item in iter_descendants(container, kind.value):
            creative: StaticCreative = create_creative(kind, self, item)

            match = next((o for o in baseline if creatives_match(o, creative)), None)
            if match is not None:
                match.augment(creative)
            else:
                existing.append(creative)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def parent(self) -> Optional["AdNode"]:
        """The wrapper ad this ad was reached through, if any."""
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def has_content(self) -> bool:
        return self.content_type is not AdContentType.EMPTY

    @property
    def is_wrapper(self) -> bool:
        """True while this is a wrapper whose target has not resolved yet."""
        return self.content_type is AdContentType.WRAPPER and not self.loaded

    @property
    def impression_urls(self) -> list[str]:
        """Impression URLs inherited from wrappers followed by this ad's own."""
        return self.inherited_impression_urls + self.own_impression_urls

    def is_empty(self) -> bool:
        """True if this <Ad> had neither <InLine> nor <Wrapper>."""
        return not self.has_content

    def has_data(self) -> bool:
        """True for inline ads and for wrappers whose target has resolved."""
        return self.loaded

    def has_sequence(self) -> bool:
        return self.sequence is not None

    def is_number(self, sequence: int) -> bool:
        return self.sequence == sequence

    def is_acceptable(self) -> bool:
        """Playable now and either standalone or the first ad of a pod."""
        return self.has_data() and (not self.has_sequence() or self.is_number(1))

    def has_sent_impression(self) -> bool:
        return self.sent_impression

    def mark_impression_sent(self) -> None:
        self.sent_impression = True

    def on_loaded(self, document: "AdDocument", allow_pods: bool) -> None:
        """Called when the document this wrapper points to has an ad available.

        Args:
            document: The wrapped document
            allow_pods: Whether the wrapper allows a pod to stand in for it
        """
        self.pod = document
        chosen = document.get_best_ad(allow_pods)
        # An unresolved wrapper in the target is not playable; wait for a later pick
        if chosen is None or not chosen.has_data():
            logger.debug("Wrapped document has no resolved ad usable by its wrapper yet")
            return

        self.current_pod_ad = chosen
        self.loaded = True

    # =========================================================================
    # Queries
    # =========================================================================

    def current(self) -> "AdNode":
        """The ad representing this one: itself, or the chosen ad of a resolved wrapper."""
        return self.current_pod_ad

    def get_next_ad(self) -> Optional["AdNode"]:
        """Return the ad that follows this one in its pod, if any."""
        if self.pod is not self.document and self.current_pod_ad is not self:
            return self.current_pod_ad.get_next_ad()

        if not self.has_sequence():
            return None

        following = self.document.get_ad_with_sequence(self.sequence + 1)
        return following.current() if following is not None else None

    def get_tag(self, tag: str, default: Any = None) -> Any:
        """Value of an ad-level tag (AdSystem, AdTitle, ...), merged from wrappers."""
        return self.properties.get(tag, default)

    def get_linear(self) -> Optional[LinearCreative]:
        return self.linear

    def get_companions(self) -> list[CompanionCreative]:
        return self.companions

    def get_companion(self, companion_id: str) -> Optional[CompanionCreative]:
        """Return the companion for the given id, or None."""
        for companion in self.companions:
            if companion.attribute("id") == companion_id:
                return companion
        return None

    def get_companions_required(self) -> CompanionsRequired:
        return self.companions_required

    def get_non_linears(self) -> list[NonLinearCreative]:
        return self.non_linears

    def __repr__(self) -> str:
        return (
            f"AdNode(id={self.ad_id!r}, type={self.content_type.value}, "
            f"sequence={self.sequence}, loaded={self.loaded})"
        )


class AdDocument:
    """One resolved VAST response.

    Resolution may still be in progress when the document is handed to a
    caller: wrapped ads, and further pod members, can arrive later. The
    ``on_ads_available`` callback fires at most once, the first time an
    acceptable ad exists; ``get_best_ad()`` may return a different ad later.
    """

    def __init__(
        self,
        on_ads_available: Optional[AdsAvailableCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        depth: int = 0,
        url: Optional[str] = None,
        beacon_sender: Optional[BeaconSender] = None,
    ):
        """Initialize an empty document.

        Args:
            on_ads_available: Called once with this document when an ad is ready
            on_error: Failure channel for fetch, chain-length and empty-response errors
            depth: Number of wrappers followed to reach this document
            url: URL the document was fetched from, if any
            beacon_sender: Sender used by tracking registries of this document's ads
        """
        self.ads: list[AdNode] = []
        self.depth = depth
        self.url = url
        self.beacon_sender = beacon_sender
        self.errors: list[Exception] = []
        self.notified = False
        self._on_ads_available = on_ads_available
        self._on_error = on_error
        self._tasks: list[asyncio.Task] = []

    def notify_available(self) -> None:
        """Fire the ads-available notification unless it already fired."""
        if self.notified:
            return
        self.notified = True

        # Cleared before calling out, the handler may take a while
        callback, self._on_ads_available = self._on_ads_available, None
        if callback is not None:
            callback(self)

    def fail(self, error: Exception) -> None:
        """Report a failure on this document's failure channel."""
        self.errors.append(error)
        if self._on_error is not None:
            self._on_error(error)

    def add_task(self, task: asyncio.Task) -> None:
        self._tasks.append(task)

    @property
    def pending(self) -> bool:
        """True while wrapper resolutions of this document are still running."""
        return any(not task.done() for task in self._tasks)

    async def wait_until_resolved(self) -> "AdDocument":
        """Wait for every wrapper resolution started for this document tree."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return self
            await asyncio.gather(*pending, return_exceptions=True)

    def get_best_ad(self, allow_pods: bool = True) -> Optional[AdNode]:
        """Return an ad to play.

        Prefers the first ad of a pod unless ``allow_pods`` is False, then
        falls back to the first standalone ad, preferring one that is already
        playable over a wrapper still being resolved. The answer may change as
        more wrapped ads resolve.

        Args:
            allow_pods: Whether a pod (multiple videos) may be played

        Returns:
            The representative ad, or None if nothing usable is present
        """
        if allow_pods:
            first = self.get_ad_with_sequence(1)
            if first is not None and not first.current().is_empty():
                return first.current()

        standalone = [
            ad.current()
            for ad in self.ads
            if not ad.has_sequence() and not ad.current().is_empty()
        ]
        for ad in standalone:
            if ad.has_data():
                return ad
        return standalone[0] if standalone else None

    def get_ad_with_sequence(self, sequence: int) -> Optional[AdNode]:
        """Return the ad with the given pod sequence number, or None."""
        for ad in self.ads:
            if ad.is_number(sequence):
                return ad
        return None

    def __iter__(self) -> Iterator[AdNode]:
        return iter(self.ads)

    def __len__(self) -> int:
        return len(self.ads)
