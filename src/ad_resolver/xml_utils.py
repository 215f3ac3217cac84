# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Namespace-agnostic helpers for walking VAST / VMAP element trees.

VAST responses arrive with and without namespaces (and VMAP always carries
one), so every lookup here matches on the local tag name only.
"""

import re
from typing import Iterator, Optional

from lxml import etree

_WHITESPACE = re.compile(r"\s")


def local_name(element: etree._Element) -> Optional[str]:
    """Return the tag name without its namespace, or None for comments/PIs."""
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


def iter_descendants(element: etree._Element, tag: str) -> Iterator[etree._Element]:
    """Iterate descendants (not the element itself) whose local name is ``tag``."""
    return element.iterdescendants(f"{{*}}{tag}")


def first_descendant(element: etree._Element, tag: str) -> Optional[etree._Element]:
    """Return the first descendant with the given local name."""
    return next(iter_descendants(element, tag), None)


def iter_child_elements(element: etree._Element) -> Iterator[etree._Element]:
    """Iterate direct children, skipping comments and processing instructions."""
    for child in element:
        if isinstance(child.tag, str):
            yield child


def first_child_element(element: etree._Element) -> Optional[etree._Element]:
    return next(iter_child_elements(element), None)


def text_content(element: Optional[etree._Element]) -> str:
    """Full text of an element including CDATA and nested text."""
    if element is None:
        return ""
    return "".join(element.itertext())


def stripped_text(element: Optional[etree._Element]) -> str:
    """Text with all whitespace removed (used for URLs)."""
    return _WHITESPACE.sub("", text_content(element))


def trimmed_text(element: Optional[etree._Element]) -> str:
    """Text with leading and trailing whitespace removed."""
    return text_content(element).strip()
