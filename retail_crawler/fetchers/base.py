"""
Fetch adapter response type.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class FetchResponse:
    """Response from a fetch operation."""

    url: str
    content: str
    status_code: int
    success: bool
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    adapter: str = "standard"
    duration_ms: Optional[int] = None
