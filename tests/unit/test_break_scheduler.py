# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Unit tests for the VMAP Break Scheduler."""

import pytest

from ad_resolver.engines import BreakScheduler, parse_break_position
from ad_resolver.exceptions import FetchError

from conftest import asset_url


class TestParseBreakPosition:
    """Tests for timeOffset normalization."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("start", "start"),
            ("end", "end"),
            ("00:10:00", 600),
            ("00:10:00.500", 600.5),
            ("25%", 0.25),
        ],
    )
    def test_supported_positions(self, value, expected):
        """Test start, end, timecode and percentage offsets are normalized."""
        assert parse_break_position(value) == expected

    @pytest.mark.parametrize("value", ["#1", "", "later"])
    def test_unsupported_positions(self, value):
        """Test positional and malformed offsets yield no position."""
        assert parse_break_position(value) is None


class TestBreakScheduler:
    """Tests for loading a VMAP document."""

    @pytest.fixture
    def scheduler(self, engine) -> BreakScheduler:
        return BreakScheduler(engine)

    async def test_break_positions(self, scheduler):
        """Test only supported breaks are kept, in document order."""
        received = []

        positions = await scheduler.load(asset_url("vmap_breaks.xml"), break_handler=received.append)

        assert positions == ["start", 600.5, "end"]
        assert received == [positions]
        assert [b.break_id for b in scheduler.breaks] == ["preroll", "midroll", "postroll"]

    async def test_ad_handler_called_per_break_with_ads(self, scheduler):
        """Test the ad handler is called once per break that has ads."""
        calls = []

        await scheduler.load(
            asset_url("vmap_breaks.xml"),
            ad_handler=lambda index, position, document: calls.append(
                (index, position, document.get_best_ad().ad_id)
            ),
        )
        await scheduler.wait_until_resolved()

        assert sorted(calls, key=lambda c: c[0]) == [
            (0, "start", "inline-1"),
            (1, 600.5, "embedded"),
        ]

    async def test_embedded_vast_is_available_immediately(self, scheduler):
        """Test embedded VAST data is built without a fetch."""
        await scheduler.load(asset_url("vmap_breaks.xml"))

        document = scheduler.breaks[1].document
        assert document is not None
        assert document.get_best_ad().get_tag("AdTitle") == "Embedded Midroll"

    async def test_failed_break_records_error(self, scheduler):
        """Test a break whose ad tag fails records the error."""
        await scheduler.load(asset_url("vmap_breaks.xml"))
        await scheduler.wait_until_resolved()

        postroll = scheduler.breaks[2]
        assert postroll.document is None
        assert len(postroll.errors) == 1
        assert isinstance(postroll.errors[0], FetchError)

    async def test_break_tracking(self, scheduler, beacons):
        """Test break start and end send the break tracking URLs."""
        await scheduler.load(asset_url("vmap_breaks.xml"))
        await scheduler.wait_until_resolved()

        document = scheduler.on_break_start(0)
        scheduler.on_break_end(0)

        assert document.get_best_ad().ad_id == "inline-1"
        assert beacons.urls == ["/preroll/breakStart", "/preroll/breakEnd"]

    async def test_break_without_end_tracking(self, scheduler, beacons):
        """Test ending a break without breakEnd tracking sends nothing."""
        await scheduler.load(asset_url("vmap_breaks.xml"))

        scheduler.on_break_start(1)
        scheduler.on_break_end(1)

        assert beacons.urls == ["/midroll/breakStart"]

    async def test_embedded_tracking_is_not_break_tracking(self, scheduler):
        """Test tracking inside embedded VAST is not used for the break."""
        await scheduler.load(asset_url("vmap_breaks.xml"))
        assert not scheduler.breaks[1].tracking.has_event("start")

    async def test_unreachable_vmap(self, scheduler):
        """Test an unreachable VMAP reports an empty break list."""
        received = []

        positions = await scheduler.load(asset_url("missing_vmap.xml"), break_handler=received.append)

        assert positions == []
        assert received == [[]]
        assert scheduler.breaks == []
