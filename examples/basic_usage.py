# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Basic usage example for the Ad Resolver.

Demonstrates:
- Resolving a VAST tag through its wrappers
- Picking the media file for a player
- Walking an ad pod
- Reporting playback tracking events

Usage:
    python basic_usage.py https://ads.example.com/vast?id=123
"""

import asyncio
import sys

from ad_resolver.clients import BeaconSender, HttpDocumentFetcher
from ad_resolver.engines import AdResolutionEngine
from ad_resolver.models.core import MediaTarget


async def main(url: str):
    """Run basic usage example."""
    print("=" * 60)
    print("Ad Resolver - Basic Usage Example")
    print("=" * 60)

    beacons = BeaconSender()

    async with HttpDocumentFetcher() as fetcher:
        engine = AdResolutionEngine(fetcher, beacon_sender=beacons)

        # Step 1: Resolve the tag
        print(f"\n1. Resolving {url} ...")

        def on_ads_available(document):
            print(f"   First playable ad available: {document.get_best_ad()!r}")

        def on_error(error):
            print(f"   Resolution problem: {error}")

        document = await engine.resolve(url, on_ads_available=on_ads_available, on_error=on_error)
        if document is None or document.get_best_ad() is None:
            print("   No ads to play")
            return

        # Step 2: Play every ad of the pod
        ad = document.get_best_ad()
        target = MediaTarget(width=1280, height=720, bitrate=2000)
        position = 1

        while ad is not None:
            print(f"\n2.{position} Ad '{ad.get_tag('AdTitle', ad.ad_id)}'")
            linear = ad.get_linear()
            if linear is None:
                print("   (no linear creative)")
                ad = ad.get_next_ad()
                position += 1
                continue

            media = linear.get_best_media(target)
            print(f"   Duration: {linear.get_duration()}s")
            print(f"   Media:    {media.src if media else 'none'}")

            # Step 3: Report playback; creativeView also sends the impressions
            linear.track("creativeView", 0, media.src if media else "")
            duration = linear.get_duration() or 0
            for point in linear.get_tracking_points():
                if point.offset == "start":
                    seconds = 0
                elif point.offset == "end":
                    seconds = duration
                else:
                    seconds = duration * float(point.offset.rstrip("%")) / 100
                fired = linear.track(point.event, seconds, media.src if media else "")
                print(f"   {point.offset:>5} {point.event}: {len(fired)} beacon(s)")

            ad = ad.get_next_ad()
            position += 1

    await beacons.drain()

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
