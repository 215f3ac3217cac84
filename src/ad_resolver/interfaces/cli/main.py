# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""CLI interface for ad resolution.

Provides commands for:
- Resolving a VAST tag and inspecting the chosen ad
- Listing the ad breaks of a VMAP document
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ...clients import HttpDocumentFetcher
from ...config import get_settings
from ...engines import AdResolutionEngine, BreakScheduler
from ...models.core import MediaTarget
from ...models.summary import AdSummary, summarize_ad

app = typer.Typer(
    name="ad-resolver",
    help="Ad Resolver CLI - Resolve VAST ad tags and VMAP ad breaks",
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@app.command()
def resolve(
    url: str = typer.Argument(..., help="VAST tag URL"),
    width: Optional[int] = typer.Option(None, "--width", help="Player width"),
    height: Optional[int] = typer.Option(None, "--height", help="Player height"),
    bitrate: Optional[float] = typer.Option(None, "--bitrate", "-b", help="Target bitrate (kbps)"),
    no_pods: bool = typer.Option(False, "--no-pods", help="Ignore ad pods"),
    abort_limit: Optional[int] = typer.Option(
        None, "--abort-limit", help="Maximum number of wrappers to follow"
    ),
):
    """Resolve a VAST tag and show the ad that would be played."""
    settings = get_settings()
    target = MediaTarget(
        width=width or settings.default_player_width,
        height=height or settings.default_player_height,
        bitrate=bitrate,
    )

    async def run() -> tuple[Optional[AdSummary], list[Exception]]:
        errors: list[Exception] = []
        async with HttpDocumentFetcher() as fetcher:
            engine = AdResolutionEngine(fetcher, wrapper_abort_limit=abort_limit)
            document = await engine.resolve(url, on_error=errors.append)
            if document is None:
                return None, errors
            ad = document.get_best_ad(allow_pods=not no_pods)
            if ad is None:
                return None, errors
            return summarize_ad(ad, target), errors

    console.print(f"Resolving [cyan]{url}[/cyan]...")
    summary, errors = asyncio.run(run())

    for error in errors:
        console.print(f"[yellow]! {error}[/yellow]")

    if summary is None:
        console.print("[red]✗ No playable ad found[/red]")
        raise typer.Exit(1)

    _print_summary(summary)


def _print_summary(summary: AdSummary) -> None:
    title = summary.tags.get("AdTitle") or summary.ad_id or "Ad"
    lines = [f"{tag}: {value}" for tag, value in summary.tags.items()]
    if summary.sequence is not None:
        lines.append(f"Pod: ad {summary.sequence} of {summary.pod_size}")
    console.print(Panel("\n".join(lines) or "(no tags)", title=title))

    for impression in summary.impression_urls:
        console.print(f"Impression: {impression}")

    linear = summary.linear
    if linear is not None:
        console.print(f"\nDuration: {linear.duration}s")
        if linear.skip_offset is not None:
            console.print(f"Skippable after: {linear.skip_offset}")
        if linear.click_through:
            console.print(f"Click-through: {linear.click_through}")

        table = Table(title="Media Files")
        table.add_column("Size")
        table.add_column("Bitrate", style="green")
        table.add_column("Type", style="yellow")
        table.add_column("URL", style="cyan")

        for media in linear.media_files:
            chosen = linear.best_media is not None and media.src == linear.best_media.src
            table.add_row(
                f"{media.attributes.get('width', '?')}x{media.attributes.get('height', '?')}",
                str(media.attributes.get("bitrate", media.attributes.get("maxBitrate", "-"))),
                media.attributes.get("type", "-"),
                f"[bold]{media.src}[/bold] ✓" if chosen else media.src,
            )
        console.print(table)

        if linear.tracking_points:
            points = Table(title="Tracking Points")
            points.add_column("Offset")
            points.add_column("Event", style="cyan")
            for point in linear.tracking_points:
                points.add_row(point.offset, point.event)
            console.print(points)

    if summary.companions:
        table = Table(title=f"Companions (required: {summary.companions_required})")
        table.add_column("ID", style="cyan")
        table.add_column("Size")
        table.add_column("Click-through")
        for companion in summary.companions:
            table.add_row(
                companion.attributes.get("id", "-"),
                f"{companion.attributes.get('width', '?')}x{companion.attributes.get('height', '?')}",
                companion.click_through or "-",
            )
        console.print(table)

    if summary.non_linears:
        console.print(f"Non-linear overlays: {len(summary.non_linears)}")


@app.command()
def breaks(
    url: str = typer.Argument(..., help="VMAP URL"),
):
    """List the ad breaks of a VMAP document."""

    async def run() -> BreakScheduler:
        async with HttpDocumentFetcher() as fetcher:
            scheduler = BreakScheduler(AdResolutionEngine(fetcher))
            await scheduler.load(url)
            await scheduler.wait_until_resolved()
            return scheduler

    scheduler = asyncio.run(run())

    if not scheduler.breaks:
        console.print("[yellow]No supported ad breaks found[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Ad Breaks")
    table.add_column("#")
    table.add_column("Break ID", style="cyan")
    table.add_column("Offset", style="yellow")
    table.add_column("Ads", style="green")

    for index, adbreak in enumerate(scheduler.breaks):
        document = adbreak.document
        best = document.get_best_ad() if document is not None else None
        table.add_row(
            str(index),
            adbreak.break_id or "-",
            adbreak.time_offset,
            best.get_tag("AdTitle", best.ad_id or "untitled") if best else "[red]none[/red]",
        )

    console.print(table)


if __name__ == "__main__":
    app()
