# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Unit tests for the creative model of inline ads."""

import pytest

from ad_resolver.models.core import CompanionsRequired, CreativeKind, TrackingPoint
from ad_resolver.models.creatives import (
    CompanionCreative,
    LinearCreative,
    NonLinearCreative,
    creatives_match,
)
from ad_resolver.models.tracking import TrackingRegistry


@pytest.fixture
async def inline_ad(resolve):
    document = await resolve("vast_inline_linear.xml")
    return document.get_best_ad()


def _companion(**attributes) -> CompanionCreative:
    return CompanionCreative(tracking=TrackingRegistry(), attributes=attributes)


class TestInlineAd:
    """Tests for tags and impressions of a single inline ad."""

    async def test_has_ad(self, inline_ad):
        """Test the inline asset yields one ad."""
        assert inline_ad is not None
        assert inline_ad.ad_id == "inline-1"
        assert not inline_ad.is_wrapper
        assert inline_ad.has_content

    async def test_ad_tags(self, inline_ad):
        """Test tag text is trimmed and Error/Impression are not tags."""
        assert inline_ad.get_tag("AdSystem") == "Acudeo Compatible"
        assert inline_ad.get_tag("AdTitle") == "VAST 2.0 Instream Test 1"
        assert inline_ad.get_tag("Description") == "VAST 2.0 Instream Test 1"
        assert inline_ad.get_tag("Error") is None
        assert inline_ad.get_tag("Impression", "missing") == "missing"

    async def test_impressions_are_whitespace_stripped(self, inline_ad):
        """Test impression URLs are stripped of whitespace."""
        assert inline_ad.impression_urls == ["/impression"]


class TestLinearCreative:
    """Tests for the parsed linear creative."""

    async def test_linear(self, inline_ad):
        """Test the ad has a linear creative."""
        linear = inline_ad.get_linear()
        assert isinstance(linear, LinearCreative)
        assert linear.kind == CreativeKind.LINEAR
        assert linear.get_click_through() == "http://linear.test.com"

    async def test_duration(self, inline_ad):
        """Test the linear duration is converted to seconds."""
        assert inline_ad.get_linear().get_duration() == 3661

    async def test_skipoffset_attribute_is_converted(self, inline_ad):
        """Test the skipoffset attribute is converted to seconds."""
        assert inline_ad.get_linear().attribute("skipoffset") == 2 * 3600 + 2 * 60 + 2

    async def test_missing_attribute_default(self, inline_ad):
        """Test a missing attribute returns the default."""
        assert inline_ad.get_linear().attribute("nope", "fallback") == "fallback"

    async def test_media_files(self, inline_ad):
        """Test every media file is read."""
        medias = inline_ad.get_linear().get_all_medias()
        assert len(medias) == 4
        assert medias[0].src == "http://test.com/video.flv"
        assert medias[0].attribute("type") == "video/x-flv"
        assert medias[0].attribute("delivery") == "progressive"
        assert medias[0].width == 400
        assert medias[0].height == 300

    async def test_tracking_points(self, inline_ad):
        """Test tracking points cover fixed, progress and skip events in order."""
        points = inline_ad.get_linear().get_tracking_points()

        assert points == [
            TrackingPoint(event="start", offset="start"),
            TrackingPoint(event="progress-10%", offset="10%"),
            TrackingPoint(event="firstQuartile", offset="25%"),
            TrackingPoint(event="midpoint", offset="50%"),
            TrackingPoint(event="thirdQuartile", offset="75%"),
            TrackingPoint(event="complete", offset="end"),
            TrackingPoint(event="progress-01:01:01", offset="100%"),
            TrackingPoint(event="skip", offset="200%"),
        ]

    async def test_tracking_points_only_for_tracked_events(self, build):
        """Test untracked events produce no points and unknown duration drops skip."""
        document = build(
            """<VAST><Ad><InLine><Creatives><Creative>
                 <Linear skipoffset="00:00:05"><TrackingEvents>
                   <Tracking event="midpoint">/mid</Tracking>
                   <Tracking event="skip">/skip</Tracking>
                   <Tracking event="progress" offset="00:00:05">/p</Tracking>
                 </TrackingEvents></Linear>
               </Creative></Creatives></InLine></Ad></VAST>"""
        )
        points = document.get_best_ad().get_linear().get_tracking_points()
        assert points == [TrackingPoint(event="midpoint", offset="50%")]

    async def test_tracks_linear_events(self, inline_ad, beacons):
        """Test linear events send their tracking URLs."""
        for i, event in enumerate(["start", "midpoint", "firstQuartile", "thirdQuartile", "complete"]):
            inline_ad.get_linear().track(event, 1, "")
            assert len(beacons.urls) == i + 1
            assert beacons.urls[i] == f"/{event}"

    async def test_tracks_linear_click(self, inline_ad, beacons):
        """Test linear clicks send the click tracking URL."""
        inline_ad.get_linear().track("click", 1, "")
        assert beacons.urls == ["/click"]

    async def test_content_playhead_macro(self, inline_ad, beacons):
        """Test the playback position is passed as an encoded timecode."""
        fired = inline_ad.get_linear().track("pause", 3661)
        assert fired[0].startswith("/pause?pos=01%3A01%3A01&cb=")
        assert len(fired[0].rsplit("=", 1)[1]) == 8


class TestImpressionTracking:
    """Tests for impressions sent with the first creativeView."""

    async def test_first_linear_creative_view_sends_impression(self, inline_ad, beacons):
        """Test the first linear creative view sends the impression."""
        inline_ad.get_linear().track("creativeView", 1, "")
        assert beacons.urls == ["/creativeView", "/impression"]
        assert inline_ad.has_sent_impression()

    async def test_second_creative_view_does_not_repeat_impression(self, inline_ad, beacons):
        """Test a second creative view does not repeat the impression."""
        inline_ad.get_linear().track("creativeView", 1, "")
        inline_ad.get_linear().track("creativeView", 1, "")
        assert beacons.urls == ["/creativeView", "/impression", "/creativeView"]

    async def test_companion_creative_view_sends_impression(self, inline_ad, beacons):
        """Test a companion creative view sends the impression."""
        inline_ad.get_companions()[0].track("creativeView", 1, "")
        assert beacons.urls == ["/firstCompanionCreativeView", "/impression"]

    async def test_nonlinear_creative_view_sends_impression(self, inline_ad, beacons):
        """Test a non-linear creative view sends the impression."""
        inline_ad.get_non_linears()[0].track("creativeView", 1, "")
        assert beacons.urls == ["/nlcreativeView", "/impression"]

    async def test_nonlinears_share_tracking(self, inline_ad, beacons):
        """Test every non-linear of an ad reports the same tracking events."""
        inline_ad.get_non_linears()[1].track("creativeView", 1, "")
        assert beacons.urls == ["/nlcreativeView", "/impression"]

    async def test_event_without_urls_does_not_send_impression(self, inline_ad, beacons):
        """Test an event with no URLs sends no impression."""
        inline_ad.get_companions()[1].track("creativeView", 1, "")
        assert beacons.urls == []
        assert not inline_ad.has_sent_impression()


class TestCompanions:
    """Tests for companion creatives."""

    async def test_companions(self, inline_ad):
        """Test both companions are read."""
        companions = inline_ad.get_companions()
        assert len(companions) == 2
        assert companions[0].get_click_through() == "http://companion1.test.com"
        assert companions[1].get_click_through() == "http://companion2.test.com"

    async def test_companions_required(self, inline_ad):
        """Test the CompanionAds required attribute is read."""
        assert inline_ad.get_companions_required() == CompanionsRequired.ANY

    async def test_get_companion_by_id(self, inline_ad):
        """Test companions can be looked up by id."""
        assert inline_ad.get_companion("second") is inline_ad.get_companions()[1]
        assert inline_ad.get_companion("missing") is None

    async def test_resources(self, inline_ad):
        """Test companion resources are grouped by type."""
        resources = inline_ad.get_companion("second").get_all_resources()
        assert resources.images == {"image/png": "http://demo.test.com/companion-728x90.png"}
        assert resources.iframe == "http://demo.test.com/companion-frame"
        assert resources.html == "<b>second</b>"

    async def test_alt_text(self, inline_ad):
        """Test companion alt text is read."""
        assert inline_ad.get_companion("first").get_alt_text() == "First companion"
        assert inline_ad.get_companion("second").get_alt_text() == ""

    async def test_companion_click_tracking(self, inline_ad, beacons):
        """Test companion clicks send the click tracking URL."""
        inline_ad.get_companion("first").track("click")
        assert beacons.urls == ["/companion-click"]


class TestNonLinears:
    """Tests for non-linear creatives."""

    async def test_nonlinears(self, inline_ad):
        """Test both non-linear creatives are read."""
        non_linears = inline_ad.get_non_linears()
        assert len(non_linears) == 2
        assert all(isinstance(n, NonLinearCreative) for n in non_linears)
        assert non_linears[0].get_click_through() == "http://nonlinear1.test.com"
        assert non_linears[0].attribute("minSuggestedDuration") == 15

    async def test_nonlinear_click_tracking(self, inline_ad, beacons):
        """Test non-linear clicks send the click tracking URL."""
        inline_ad.get_non_linears()[0].track("click")
        assert beacons.urls == ["/nonlinear-click"]


class TestCreativeMatching:
    """Tests for pairing companions and non-linears across levels."""

    def test_match_by_id(self):
        """Test creatives with equal ids match."""
        assert creatives_match(_companion(id="a"), _companion(id="a"))

    def test_match_by_size(self):
        """Test creatives with equal width and height match."""
        assert creatives_match(
            _companion(width="300", height="250"),
            _companion(width="300", height="250"),
        )

    def test_conflicting_size_does_not_match(self):
        """Test a size conflict prevents a match."""
        assert not creatives_match(
            _companion(id="a", width="300", height="250"),
            _companion(id="a", width="728", height="90"),
        )

    def test_width_only_is_not_enough(self):
        """Test a shared width alone does not match."""
        assert not creatives_match(_companion(width="300"), _companion(width="300"))

    def test_id_on_one_side_only_uses_size(self):
        """Test an id set on one side only falls back to size."""
        assert creatives_match(
            _companion(id="a", width="300", height="250"),
            _companion(width="300", height="250"),
        )

    def test_no_shared_keys(self):
        """Test creatives sharing no keys do not match."""
        assert not creatives_match(_companion(id="a"), _companion(width="300", height="250"))


class TestMergeWithinDocument:
    """Tests for creatives declared more than once in the same ad."""

    def test_siblings_in_one_creative_are_not_merged(self, build):
        """Test siblings within one Creative are never merged."""
        document = build(
            """<VAST><Ad><InLine><Creatives><Creative><CompanionAds>
                 <Companion id="x"><CompanionClickThrough>http://one</CompanionClickThrough></Companion>
                 <Companion id="x"><CompanionClickThrough>http://two</CompanionClickThrough></Companion>
               </CompanionAds></Creative></Creatives></InLine></Ad></VAST>"""
        )
        assert len(document.get_best_ad().get_companions()) == 2

    def test_later_creative_augments_earlier_one(self, build):
        """Test a later Creative augments a matching earlier one."""
        document = build(
            """<VAST><Ad><InLine><Creatives>
                 <Creative><CompanionAds>
                   <Companion id="x"><CompanionClickThrough>http://one</CompanionClickThrough></Companion>
                 </CompanionAds></Creative>
                 <Creative><CompanionAds required="all">
                   <Companion id="x"><CompanionClickThrough>http://two</CompanionClickThrough></Companion>
                 </CompanionAds></Creative>
               </Creatives></InLine></Ad></VAST>"""
        )
        ad = document.get_best_ad()
        assert len(ad.get_companions()) == 1
        assert ad.get_companion("x").get_click_through() == "http://two"
        assert ad.get_companions_required() == CompanionsRequired.ALL

    def test_second_linear_augments_first(self, build):
        """Test a second Linear augments the first."""
        document = build(
            """<VAST><Ad><InLine><Creatives>
                 <Creative><Linear><Duration>00:00:10</Duration>
                   <TrackingEvents><Tracking event="start">/a</Tracking></TrackingEvents>
                 </Linear></Creative>
                 <Creative><Linear>
                   <TrackingEvents><Tracking event="start">/b</Tracking></TrackingEvents>
                 </Linear></Creative>
               </Creatives></InLine></Ad></VAST>"""
        )
        linear = document.get_best_ad().get_linear()
        assert linear.get_duration() == 10
        assert [e.url for e in linear.tracking.events["start"]] == ["/a", "/b"]
