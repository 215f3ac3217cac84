# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Break Scheduler - enumerates VMAP ad breaks and resolves their ads.

A VMAP response lists the ad breaks of a piece of content. Each break
either embeds its VAST response (<VASTAdData>) or points at one
(<AdTagURI>); both are handed to the resolution engine. Ordinal positions
(``timeOffset="#1"``) are not supported and are skipped.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from lxml import etree

from ..exceptions import FetchError
from ..models.ad import AdDocument
from ..models.timecode import Seconds, percentage_value, timecode_from_string
from ..models.tracking import TrackingRegistry
from ..xml_utils import first_descendant, iter_child_elements, iter_descendants, local_name, stripped_text
from .resolution_engine import AdResolutionEngine

logger = logging.getLogger(__name__)

BREAK_START_EVENT = "breakStart"
BREAK_END_EVENT = "breakEnd"

# "start", "end", seconds into the content, or a fraction of it (< 1)
BreakPosition = Union[str, Seconds]

AdHandler = Callable[[int, BreakPosition, AdDocument], Any]
BreakHandler = Callable[[list[BreakPosition]], Any]


def parse_break_position(time_offset: str) -> Optional[BreakPosition]:
    """Normalize a VMAP ``timeOffset``.

    Args:
        time_offset: ``start``, ``end``, ``HH:MM:SS[.mmm]`` or ``NN%``

    Returns:
        ``"start"``/``"end"``, seconds for timecodes, a fraction for
        percentages, or None for anything else (ordinal positions included)
    """
    value = time_offset.strip()
    if value in ("start", "end"):
        return value

    percent = percentage_value(value)
    if percent is not None:
        return percent / 100

    seconds = timecode_from_string(value)
    if isinstance(seconds, str):
        return None
    return seconds


@dataclass
class AdBreak:
    """One scheduled break of a VMAP response."""

    time_offset: str
    position: BreakPosition
    tracking: TrackingRegistry
    break_id: Optional[str] = None
    document: Optional[AdDocument] = None
    errors: list[Exception] = field(default_factory=list)


class BreakScheduler:
    """Loads a VMAP response and keeps the ad data of each break.

    Example:
        scheduler = BreakScheduler(engine)
        positions = await scheduler.load(vmap_url, ad_handler=on_ads)
        ...
        document = scheduler.on_break_start(0)
        ...
        scheduler.on_break_end(0)
    """

    def __init__(self, engine: AdResolutionEngine):
        self.engine = engine
        self.breaks: list[AdBreak] = []
        self._tasks: list[asyncio.Task] = []

    async def load(
        self,
        url: str,
        ad_handler: Optional[AdHandler] = None,
        break_handler: Optional[BreakHandler] = None,
    ) -> list[BreakPosition]:
        """Fetch a VMAP document and start resolving the ads of every break.

        Args:
            url: VMAP endpoint
            ad_handler: Called at most once per break with the break index (in
                the list given to ``break_handler``), its position and the
                document holding its ads, as soon as an ad is available
            break_handler: Called once with the positions of every supported
                break (an empty list if the VMAP could not be loaded)

        Returns:
            The break positions, in document order
        """
        try:
            root = await self.engine.fetcher.fetch(url)
        except FetchError as e:
            logger.error(f"Failed to load VMAP from '{url}': {e.reason}")
            if break_handler is not None:
                break_handler([])
            return []

        positions = self.load_document(root, ad_handler)
        if break_handler is not None:
            break_handler(positions)
        return positions

    def load_document(
        self,
        root: etree._Element,
        ad_handler: Optional[AdHandler] = None,
    ) -> list[BreakPosition]:
        """Register the breaks of an already parsed VMAP document."""
        positions: list[BreakPosition] = []

        for number, element in enumerate(iter_descendants(root, "AdBreak")):
            time_offset = (element.get("timeOffset") or "").strip()
            if time_offset.startswith("#"):
                logger.debug(f"Skipping ordinal break #{number} at '{time_offset}'")
                continue

            position = parse_break_position(time_offset)
            if position is None:
                logger.warning(f"Skipping break #{number} with unsupported timeOffset '{time_offset}'")
                continue

            adbreak = AdBreak(
                time_offset=time_offset,
                position=position,
                break_id=element.get("breakId"),
                tracking=self._break_tracking(element),
            )
            if not self._load_break_ads(element, adbreak, len(self.breaks), ad_handler):
                logger.error(f"No supported ad target for break #{number}")
                continue

            self.breaks.append(adbreak)
            positions.append(position)

        return positions

    def _break_tracking(self, element: etree._Element) -> TrackingRegistry:
        # Only the break's own <TrackingEvents>, not those of embedded VAST ads
        for child in iter_child_elements(element):
            if local_name(child) == "TrackingEvents":
                return TrackingRegistry.from_element(child, sender=self.engine.beacon_sender)
        return TrackingRegistry(sender=self.engine.beacon_sender)

    def _load_break_ads(
        self,
        element: etree._Element,
        adbreak: AdBreak,
        index: int,
        ad_handler: Optional[AdHandler],
    ) -> bool:
        def on_ads_available(document: AdDocument) -> None:
            adbreak.document = document
            if ad_handler is not None:
                ad_handler(index, adbreak.position, document)

        data = first_descendant(element, "VASTAdData")
        if data is None:
            data = first_descendant(element, "VASTData")
        if data is not None:
            vast = first_descendant(data, "VAST")
            adbreak.document = self.engine.build_document(
                vast if vast is not None else data,
                on_ads_available=on_ads_available,
                on_error=adbreak.errors.append,
            )
            return True

        uri = first_descendant(element, "AdTagURI")
        if uri is not None:
            task = asyncio.get_running_loop().create_task(
                self._query_break(stripped_text(uri), adbreak, on_ads_available)
            )
            self._tasks.append(task)
            return True

        return False

    async def _query_break(
        self,
        url: str,
        adbreak: AdBreak,
        on_ads_available: Callable[[AdDocument], None],
    ) -> None:
        document = await self.engine.query(
            url,
            on_ads_available=on_ads_available,
            on_error=adbreak.errors.append,
        )
        if document is not None:
            adbreak.document = document
            await document.wait_until_resolved()

    async def wait_until_resolved(self) -> None:
        """Wait until the ads of every break have been fetched and resolved."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        for adbreak in self.breaks:
            if adbreak.document is not None:
                await adbreak.document.wait_until_resolved()

    def on_break_start(self, index: int) -> Optional[AdDocument]:
        """Call when a break is reached, whether or not it has ads.

        Args:
            index: Index of the break in the list given to ``break_handler``

        Returns:
            The ads for this break, or None if they have not been fetched yet
        """
        adbreak = self.breaks[index]
        adbreak.tracking.track(BREAK_START_EVENT)
        return adbreak.document

    def on_break_end(self, index: int) -> None:
        """Call when a break has finished, whether or not it had ads."""
        self.breaks[index].tracking.track(BREAK_END_EVENT)
