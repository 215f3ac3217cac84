"""Pytest configuration and fixtures for Ad Resolver tests."""

from pathlib import Path
from typing import Callable, Optional

import pytest
from lxml import etree

from ad_resolver.clients.beacon_sender import BeaconSender
from ad_resolver.clients.http_fetcher import parse_document
from ad_resolver.config import Settings
from ad_resolver.engines import AdResolutionEngine
from ad_resolver.exceptions import FetchError
from ad_resolver.models.ad import AdDocument

ASSETS_DIR = Path(__file__).parent / "assets"
ASSET_HOST = "http://ads.test/"


def asset_url(name: str) -> str:
    """URL under which the fake fetcher serves an asset file."""
    return f"{ASSET_HOST}{name}"


class FakeFetcher:
    """Serves documents from tests/assets and records every request."""

    def __init__(self) -> None:
        self.requests: list[str] = []

    async def fetch(self, url: str) -> etree._Element:
        self.requests.append(url)
        path = ASSETS_DIR / url.removeprefix(ASSET_HOST)
        if not path.is_file():
            raise FetchError(url, "unexpected status 404")
        return parse_document(path.read_bytes(), url)


class RecordingBeaconSender(BeaconSender):
    """Beacon sender that records URLs instead of sending them."""

    def __init__(self) -> None:
        super().__init__(timeout=1.0, user_agent="ad-resolver-tests")
        self.urls: list[str] = []

    def fire(self, url: str) -> None:
        self.urls.append(url)


@pytest.fixture
def settings() -> Settings:
    """Settings with library defaults, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def beacons() -> RecordingBeaconSender:
    return RecordingBeaconSender()


@pytest.fixture
def engine(fetcher: FakeFetcher, settings: Settings, beacons: RecordingBeaconSender) -> AdResolutionEngine:
    """Engine wired to the asset fetcher and the recording beacon sender."""
    return AdResolutionEngine(fetcher, settings=settings, beacon_sender=beacons)


@pytest.fixture
def resolve(engine: AdResolutionEngine) -> Callable:
    """Resolve an asset by file name, collecting reported errors."""

    async def _resolve(name: str, errors: Optional[list] = None) -> Optional[AdDocument]:
        on_error = errors.append if errors is not None else None
        return await engine.resolve(asset_url(name), on_error=on_error)

    return _resolve


@pytest.fixture
def build(engine: AdResolutionEngine) -> Callable:
    """Build a document from an inline XML string (no wrappers followed)."""

    def _build(xml: str, errors: Optional[list] = None) -> AdDocument:
        on_error = errors.append if errors is not None else None
        return engine.build_document(parse_document(xml.encode()), on_error=on_error)

    return _build
