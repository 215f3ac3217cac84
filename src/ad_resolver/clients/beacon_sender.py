# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Fire-and-forget delivery of tracking beacons."""

import asyncio
import logging
from typing import Optional, Union

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)


class BeaconSender:
    """Sends tracking pixels as GET requests without reporting the outcome.

    When called from inside a running event loop the request is scheduled as a
    background task; otherwise it is sent synchronously. Failures are logged
    and never raised to the caller.

    Usage:
        sender = BeaconSender()
        sender.fire("https://tracker.example.com/impression?cb=12345678")
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[Union[httpx.BaseTransport, httpx.AsyncBaseTransport]] = None,
    ):
        """Initialize the sender.

        Args:
            timeout: Per-beacon timeout in seconds
            user_agent: User-Agent header to send
            transport: Optional httpx transport (used for testing); must
                support the sync or async mode beacons are sent in
        """
        settings = get_settings()
        self.timeout = timeout if timeout is not None else settings.beacon_timeout
        self.user_agent = user_agent or settings.user_agent
        self._transport = transport
        self._pending: set[asyncio.Task] = set()

    @property
    def headers(self) -> dict[str, str]:
        return {"User-Agent": self.user_agent}

    def fire(self, url: str) -> None:
        """Dispatch a beacon for ``url``."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            self._send_sync(url)
            return

        task = loop.create_task(self._send_async(url))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled beacon to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _send_async(self, url: str) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Tracking beacon to '{url}' failed: {e}")

    def _send_sync(self, url: str) -> None:
        try:
            with httpx.Client(
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Tracking beacon to '{url}' failed: {e}")


_default_sender: Optional[BeaconSender] = None


def get_default_sender() -> BeaconSender:
    """Get the shared sender used when no sender was injected."""
    global _default_sender

    if _default_sender is None:
        _default_sender = BeaconSender()

    return _default_sender
