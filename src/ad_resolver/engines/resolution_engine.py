# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Ad Resolution Engine - turns VAST responses into resolved ad documents.

Responsibilities:
- Classify every <Ad> as inline, wrapper or empty
- Follow wrapper indirections asynchronously, with a chain length limit
- Build pod chains from sequence numbers
- Fire the one-shot "ads available" notification as soon as an acceptable
  ad exists, and report failures without stopping sibling ads
"""

import asyncio
import logging
from typing import Optional

from lxml import etree

from ..clients.beacon_sender import BeaconSender
from ..clients.http_fetcher import DocumentFetcher
from ..config import Settings, get_settings
from ..exceptions import (
    FetchError,
    NoAdsError,
    ResolutionError,
    WrapperLimitError,
    format_sanitized_traceback,
)
from ..models.ad import AdDocument, AdNode, AdsAvailableCallback, ErrorCallback
from ..models.core import AdContentType
from ..xml_utils import first_descendant, iter_descendants, stripped_text

logger = logging.getLogger(__name__)


class AdResolutionEngine:
    """Resolves VAST documents, following wrappers until inline ads are found.

    Building a document never waits for a wrapper: each wrapper fetch runs as
    its own task while the remaining <Ad> siblings keep being processed.

    Example:
        async with HttpDocumentFetcher() as fetcher:
            engine = AdResolutionEngine(fetcher)
            document = await engine.resolve("https://ads.example.com/vast")
            ad = document.get_best_ad()
    """

    def __init__(
        self,
        fetcher: DocumentFetcher,
        settings: Optional[Settings] = None,
        beacon_sender: Optional[BeaconSender] = None,
        wrapper_abort_limit: Optional[int] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            fetcher: Collaborator that fetches and parses documents
            settings: Settings to use instead of the environment defaults
            beacon_sender: Sender for tracking beacons of resolved ads
            wrapper_abort_limit: Overrides the configured wrapper chain limit
        """
        self._fetcher = fetcher
        self._settings = settings or get_settings()
        self._beacon_sender = beacon_sender
        self._abort_limit = (
            wrapper_abort_limit
            if wrapper_abort_limit is not None
            else self._settings.wrapper_abort_limit
        )

    @property
    def settings(self) -> Settings:
        """Get the engine settings."""
        return self._settings

    @property
    def fetcher(self) -> DocumentFetcher:
        return self._fetcher

    @property
    def beacon_sender(self) -> Optional[BeaconSender]:
        return self._beacon_sender

    @property
    def abort_limit(self) -> Optional[int]:
        """Maximum number of wrappers in a chain, or None when unlimited."""
        if self._abort_limit is None or self._abort_limit < 0:
            return None
        return self._abort_limit

    async def resolve(
        self,
        url: str,
        on_ads_available: Optional[AdsAvailableCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Optional[AdDocument]:
        """Query ``url`` and wait until every wrapper in it has been resolved.

        Returns:
            The fully resolved document, or None if ``url`` itself failed
        """
        document = await self.query(url, on_ads_available, on_error)
        if document is not None:
            await document.wait_until_resolved()
        return document

    async def query(
        self,
        url: str,
        on_ads_available: Optional[AdsAvailableCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        parent: Optional[AdNode] = None,
        depth: int = 0,
    ) -> Optional[AdDocument]:
        """Fetch a VAST document and start resolving it.

        The returned document may still have wrapper resolutions in flight;
        ``on_ads_available`` fires as soon as an acceptable ad exists.

        Args:
            url: VAST endpoint
            on_ads_available: Called once with the document when an ad is ready
            on_error: Failure channel; called once per failure
            parent: The wrapper ad whose target this is
            depth: Number of wrappers followed to reach ``url``

        Returns:
            The document, or None if it could not be fetched
        """
        try:
            root = await self._fetcher.fetch(url)
        except FetchError as e:
            logger.error(f"Failed to load VAST from '{url}': {e.reason}")
            if on_error is not None:
                on_error(e)
            return None

        return self.build_document(
            root,
            on_ads_available=on_ads_available,
            on_error=on_error,
            parent=parent,
            depth=depth,
            url=url,
        )

    def build_document(
        self,
        root: etree._Element,
        on_ads_available: Optional[AdsAvailableCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        parent: Optional[AdNode] = None,
        depth: int = 0,
        url: Optional[str] = None,
    ) -> AdDocument:
        """Turn a parsed VAST root into an AdDocument.

        Must run inside an event loop when the document contains wrappers,
        since their targets are fetched by background tasks.

        Args:
            root: The <VAST> element (or any element containing <Ad>s)
            on_ads_available: Called once with the document when an ad is ready
            on_error: Failure channel
            parent: The wrapper ad whose target this is
            depth: Number of wrappers followed to reach this document
            url: Where the document came from, for diagnostics

        Returns:
            The document; wrapper resolutions may still be running
        """
        document = AdDocument(
            on_ads_available=on_ads_available,
            on_error=on_error,
            depth=depth,
            url=url,
            beacon_sender=self._beacon_sender,
        )

        ad_elements = list(iter_descendants(root, "Ad"))
        if not ad_elements:
            logger.info(f"No ads in VAST response from {url or 'inline document'}")
            document.fail(NoAdsError(url))
            return document

        for index, element in enumerate(ad_elements):
            try:
                ad = AdNode(document, element, parent)
            except Exception as e:
                logger.error(
                    f"Failed to build ad #{index} of {url or 'inline document'}: {e}\n"
                    f"{format_sanitized_traceback(e)}"
                )
                continue

            if ad.is_empty():
                logger.debug(f"Skipping ad #{index}: neither InLine nor Wrapper")
                continue

            document.ads.append(ad)

            if ad.is_acceptable():
                document.notify_available()
            elif ad.content_type is AdContentType.WRAPPER:
                self._follow_wrapper(document, ad)

        return document

    def _follow_wrapper(self, document: AdDocument, ad: AdNode) -> None:
        """Start resolving the target of a wrapper ad."""
        wrapper = ad.wrapper_element
        uri_element = first_descendant(wrapper, "VASTAdTagURI") if wrapper is not None else None
        if uri_element is None:
            logger.warning(f"Wrapper ad {ad.ad_id!r} has no VASTAdTagURI")
            return

        url = stripped_text(uri_element)
        allow_pods = self._allows_multiple_ads(wrapper)
        depth = document.depth + 1

        limit = self.abort_limit
        if limit is not None and depth > limit:
            logger.warning(f"Not following wrapper to '{url}': abort limit of {limit} reached")
            document.fail(WrapperLimitError(limit))
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Cannot follow wrapper to '{url}' without a running event loop")
            document.fail(ResolutionError(f"No running event loop to resolve wrapper target '{url}'"))
            return

        task = loop.create_task(
            self._resolve_wrapper(document, ad, url, allow_pods, depth)
        )
        document.add_task(task)

    def _allows_multiple_ads(self, wrapper: etree._Element) -> bool:
        value = wrapper.get("allowMultipleAds")
        if value is None:
            return self._settings.allow_multiple_ads
        return value.strip().lower() in ("true", "1")

    async def _resolve_wrapper(
        self,
        document: AdDocument,
        ad: AdNode,
        url: str,
        allow_pods: bool,
        depth: int,
    ) -> None:
        """Fetch a wrapper's target and hook its best ad into ``ad``."""

        def on_target_available(target: AdDocument) -> None:
            ad.on_loaded(target, allow_pods)
            if ad.is_acceptable():
                document.notify_available()

        logger.debug(f"Following wrapper {ad.ad_id!r} to '{url}' (depth {depth})")
        try:
            target = await self.query(
                url,
                on_ads_available=on_target_available,
                on_error=document.fail,
                parent=ad,
                depth=depth,
            )
            if target is not None:
                await target.wait_until_resolved()
                # The target may have notified before the ad this wrapper can use was resolved
                if target.notified and (not ad.loaded or ad.current().is_wrapper):
                    on_target_available(target)
        except ResolutionError as e:
            document.fail(e)
        except Exception as e:
            logger.error(
                f"Unexpected error resolving wrapper target '{url}': {e}\n"
                f"{format_sanitized_traceback(e)}"
            )
            document.fail(ResolutionError(f"Failed to resolve wrapper target '{url}': {e}"))
