#!/usr/bin/env python3
# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Ad Resolver API server.

Serves the REST API:
- GET /resolve?url=...  resolve a VAST tag and summarize the chosen ad
- GET /breaks?url=...   list the ad breaks of a VMAP document

Usage:
    cd examples
    python api_server.py

Runs on port 8003
"""

import logging
from pathlib import Path

# Load .env from project root (so script works from any directory)
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from ad_resolver.config import get_settings
from ad_resolver.interfaces.api.main import app

console = Console()


def main():
    """Run the Ad Resolver API server."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    limit = settings.wrapper_abort_limit
    if limit is None or limit < 0:
        limit = "unlimited"
    console.print(Panel(
        f"Port: 8003\nWrapper abort limit: {limit}\nDocs: http://localhost:8003/docs",
        title="AD RESOLVER API",
        style="bold yellow",
    ))

    uvicorn.run(app, host="0.0.0.0", port=8003, log_level="warning")


if __name__ == "__main__":
    main()
