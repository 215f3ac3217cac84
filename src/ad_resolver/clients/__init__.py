# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Transport clients for ad documents and tracking beacons."""

from .http_fetcher import DocumentFetcher, HttpDocumentFetcher, parse_document
from .beacon_sender import BeaconSender, get_default_sender

__all__ = [
    "DocumentFetcher",
    "HttpDocumentFetcher",
    "parse_document",
    # Tracking beacons
    "BeaconSender",
    "get_default_sender",
]
