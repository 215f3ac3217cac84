# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Exceptions raised and reported while resolving ad documents."""

import os
import re
import sys
import traceback
from typing import Optional


class ResolutionError(Exception):
    """Base class for failures reported on an ad document's failure channel."""


class FetchError(ResolutionError):
    """A VAST/VMAP document could not be fetched or parsed as XML."""

    def __init__(self, url: str, reason: str, cause: Optional[BaseException] = None):
        self.url = url
        self.reason = reason
        self.cause = cause
        super().__init__(f"Failed to load '{url}': {reason}")


class NoAdsError(ResolutionError):
    """The document contained no <Ad> elements at all."""

    def __init__(self, url: Optional[str] = None):
        self.url = url
        where = f" from '{url}'" if url else ""
        super().__init__(f"VAST response{where} contains no ads")


class WrapperLimitError(ResolutionError):
    """The wrapper chain grew longer than the configured abort limit."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Reached abort limit of ({limit}) wrappers.")


def _path_prefixes() -> list[str]:
    prefixes = [p for p in sys.path if p and os.path.isabs(p) and os.path.isdir(p)]
    prefixes.append(os.getcwd())
    # Longest first so nested site-packages win over their parents
    return sorted({os.path.join(p, "") for p in prefixes}, key=len, reverse=True)


def format_sanitized_traceback(exc: BaseException) -> str:
    """Render a traceback with environment-specific path prefixes removed.

    Keeps log lines short and comparable between machines by trimming the
    interpreter's import roots and the working directory from file paths.
    """
    text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    for prefix in _path_prefixes():
        text = text.replace(prefix, "")
    return re.sub(r"\n\s*\n", "\n", text).rstrip()
