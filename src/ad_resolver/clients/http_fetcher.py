# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""HTTP transport for VAST and VMAP documents.

The resolution engine never talks HTTP itself; it is handed a fetcher that
turns a URL into a parsed element tree or raises FetchError.
"""

import logging
from typing import Any, Optional, Protocol

import httpx
from lxml import etree

from ..config import get_settings
from ..exceptions import FetchError

logger = logging.getLogger(__name__)


class DocumentFetcher(Protocol):
    """Anything that can fetch a URL and return the document root element."""

    async def fetch(self, url: str) -> etree._Element:
        ...


def parse_document(content: bytes, url: str = "") -> etree._Element:
    """Parse raw bytes into an XML element tree.

    Entity resolution and network access are disabled: responses come from
    third-party ad servers.

    Raises:
        FetchError: If the content is empty or not well-formed XML
    """
    if not content or not content.strip():
        raise FetchError(url, "empty response body")

    parser = etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        remove_blank_text=False,
    )
    try:
        return etree.fromstring(content, parser=parser)
    except etree.XMLSyntaxError as e:
        raise FetchError(url, f"response is not valid XML: {e}", cause=e) from e


class HttpDocumentFetcher:
    """Fetches documents over HTTP(S) with a cookie-preserving client.

    Cookies set by one ad server response are replayed on later requests made
    through the same fetcher, which is what credentialed cross-origin requests
    amount to outside a browser.

    Usage:
        async with HttpDocumentFetcher() as fetcher:
            root = await fetcher.fetch("https://ads.example.com/vast?id=1")
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        follow_redirects: Optional[bool] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the fetcher.

        Args:
            timeout: Request timeout in seconds
            follow_redirects: Whether to follow HTTP redirects
            user_agent: User-Agent header
            transport: Optional httpx transport (used for testing)
        """
        settings = get_settings()
        self.timeout = timeout if timeout is not None else settings.fetch_timeout
        self.follow_redirects = (
            follow_redirects if follow_redirects is not None else settings.fetch_follow_redirects
        )
        self.user_agent = user_agent or settings.user_agent
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "HttpDocumentFetcher":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.disconnect()

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        if self._http_client is not None:
            return

        self._http_client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=self.follow_redirects,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "application/xml, text/xml, */*",
            },
            transport=self._transport,
        )

    async def disconnect(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(self, url: str) -> etree._Element:
        """Fetch ``url`` and parse the response body as XML.

        Args:
            url: Absolute URL of the document

        Returns:
            Root element of the parsed document

        Raises:
            FetchError: On transport errors, non-200 responses or invalid XML
        """
        if not self._http_client:
            await self.connect()

        try:
            response = await self._http_client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(url, f"request failed: {e}", cause=e) from e

        if response.status_code != 200:
            raise FetchError(url, f"unexpected status {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if content_type and "xml" not in content_type:
            logger.debug(f"Parsing '{url}' as XML despite content type '{content_type}'")

        return parse_document(response.content, url)
