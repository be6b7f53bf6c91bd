"""
JSON-LD structured data lookup.

Handles a single object, a top-level array of objects, and @graph wrappers.
Malformed blocks are skipped so that extraction falls through to markup.
"""

import json
import logging
from typing import Any, Dict, Iterator, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


def iter_json_ld(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening arrays and @graph."""
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except (ValueError, TypeError) as e:
            logger.debug(f"Skipping malformed JSON-LD block: {e}")
            continue
        yield from _flatten(data)


def _flatten(data: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _flatten(item)
    elif isinstance(data, dict):
        graph = data.get("@graph")
        if isinstance(graph, list):
            yield from _flatten(graph)
        if "@type" in data:
            yield data


def has_type(item: Dict[str, Any], type_name: str) -> bool:
    """Check an object's @type, which may be a string or a list of strings."""
    item_type = item.get("@type")
    if isinstance(item_type, list):
        return type_name in item_type
    return item_type == type_name


def find_typed(soup: BeautifulSoup, type_name: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON-LD object of the given @type, or None."""
    for item in iter_json_ld(soup):
        if has_type(item, type_name):
            return item
    return None


def first_value(value: Any) -> Any:
    """Unwrap single-element lists, which JSON-LD uses freely."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def text_value(value: Any) -> Optional[str]:
    """Coerce a JSON-LD value (string, number, or {"name": ...}) to stripped text."""
    value = first_value(value)
    if isinstance(value, dict):
        value = value.get("name")
    if value is None:
        return None
    text = str(value).strip()
    return text or None
