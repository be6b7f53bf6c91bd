"""
Category inference from URL paths.

Patterns are tried in order, so specific labels ("dog-food") must come
before the generic ones ("dog", "pets").
"""

import re
from typing import Optional, Sequence, Tuple
from urllib.parse import urlparse

DEFAULT_CATEGORY_PATTERNS: Sequence[Tuple[str, str]] = (
    ("dog-food", r"(dog|puppy)[-_]?food"),
    ("dog-treats", r"(dog|puppy)[-_]?treats?"),
    ("cat-food", r"(cat|kitten)[-_]?food"),
    ("cat-treats", r"(cat|kitten)[-_]?treats?"),
    ("dog-accessories", r"dog[-_]?(accessories|toys|beds|leads|collars|bowls)"),
    ("cat-accessories", r"cat[-_]?(accessories|toys|beds|litter|scratch\w*)"),
    ("dog", r"\b(dogs?|puppy|puppies)\b"),
    ("cat", r"\b(cats?|kittens?)\b"),
    ("pets", r"\bpets?\b"),
)


def infer_category(url: str, patterns: Sequence[Tuple[str, str]] = DEFAULT_CATEGORY_PATTERNS) -> Optional[str]:
    """Return the first category label whose pattern matches the URL path."""
    if not url:
        return None
    path = urlparse(url).path
    for label, pattern in patterns:
        if re.search(pattern, path, re.IGNORECASE):
            return label
    return None
