"""
Ordered CSS selector helpers.

Each helper walks a list of selectors and returns the first non-empty match.
A selector the parser rejects is logged and skipped.
"""

import logging
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)


def select_all(node, selector: str) -> List[Tag]:
    try:
        return node.select(selector)
    except Exception as e:
        logger.debug(f"Selector {selector} failed: {e}")
        return []


def select_first(node, selectors: Iterable[str]) -> Optional[Tag]:
    """First element matching any selector, in selector order."""
    for selector in selectors:
        elements = select_all(node, selector)
        if elements:
            return elements[0]
    return None


def element_text(element: Optional[Tag]) -> Optional[str]:
    if element is None:
        return None
    text = " ".join(element.get_text(" ", strip=True).split())
    return text or None


def select_text(node, selectors: Iterable[str]) -> Optional[str]:
    """Text of the first selector whose first match has non-empty text."""
    for selector in selectors:
        elements = select_all(node, selector)
        if elements:
            text = element_text(elements[0])
            if text:
                return text
    return None


def select_attr(node, selectors: Iterable[str], attributes: Iterable[str]) -> Optional[str]:
    """First non-empty attribute value among the matches of each selector."""
    attributes = list(attributes)
    for selector in selectors:
        for element in select_all(node, selector):
            for attribute in attributes:
                value = element.get(attribute)
                if isinstance(value, list):
                    value = " ".join(value)
                if value and str(value).strip():
                    return str(value).strip()
    return None


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")
