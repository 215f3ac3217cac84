# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""REST API interface for programmatic access.

Provides endpoints for:
- Resolving a VAST tag into the ad a player should show
- Listing the ad breaks of a VMAP document
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from ...clients import HttpDocumentFetcher
from ...engines import AdResolutionEngine, BreakScheduler
from ...engines.break_scheduler import BreakPosition
from ...models.core import MediaTarget
from ...models.summary import AdSummary, summarize_ad

app = FastAPI(
    title="Ad Resolver API",
    description="VAST ad resolution and VMAP break scheduling",
    version="0.1.0",
)


# =============================================================================
# Response Models
# =============================================================================


class ResolveResponse(BaseModel):
    """Resolution result."""

    url: str
    ad: AdSummary
    errors: list[str] = []


class BreakInfo(BaseModel):
    """One VMAP ad break."""

    index: int
    break_id: Optional[str] = None
    time_offset: str
    position: BreakPosition
    ad: Optional[AdSummary] = None
    errors: list[str] = []


class BreaksResponse(BaseModel):
    """VMAP break listing."""

    url: str
    breaks: list[BreakInfo]


# =============================================================================
# Endpoints
# =============================================================================


@app.get("/")
async def root():
    """API root."""
    return {
        "name": "Ad Resolver API",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/resolve", response_model=ResolveResponse)
async def resolve(
    url: str = Query(..., description="VAST tag URL"),
    width: float = Query(640, description="Player width"),
    height: float = Query(360, description="Player height"),
    bitrate: Optional[float] = Query(None, description="Target bitrate"),
    allow_pods: bool = Query(True, description="Whether an ad pod may be played"),
):
    """Resolve a VAST tag, following wrappers, and summarize the best ad."""
    errors: list[Exception] = []

    async with HttpDocumentFetcher() as fetcher:
        engine = AdResolutionEngine(fetcher)
        document = await engine.resolve(url, on_error=errors.append)

    ad = document.get_best_ad(allow_pods) if document is not None else None
    if ad is None:
        detail = str(errors[0]) if errors else "No playable ad found"
        raise HTTPException(status_code=404, detail=detail)

    target = MediaTarget(width=width, height=height, bitrate=bitrate)
    return ResolveResponse(
        url=url,
        ad=summarize_ad(ad, target),
        errors=[str(e) for e in errors],
    )


@app.get("/breaks", response_model=BreaksResponse)
async def list_breaks(
    url: str = Query(..., description="VMAP URL"),
    width: float = Query(640, description="Player width"),
    height: float = Query(360, description="Player height"),
):
    """List the ad breaks of a VMAP document with the ad chosen for each."""
    async with HttpDocumentFetcher() as fetcher:
        scheduler = BreakScheduler(AdResolutionEngine(fetcher))
        await scheduler.load(url)
        await scheduler.wait_until_resolved()

    target = MediaTarget(width=width, height=height)
    breaks = []
    for index, adbreak in enumerate(scheduler.breaks):
        best = adbreak.document.get_best_ad() if adbreak.document is not None else None
        breaks.append(
            BreakInfo(
                index=index,
                break_id=adbreak.break_id,
                time_offset=adbreak.time_offset,
                position=adbreak.position,
                ad=summarize_ad(best, target) if best is not None else None,
                errors=[str(e) for e in adbreak.errors],
            )
        )

    return BreaksResponse(url=url, breaks=breaks)
