"""
Core types for Billingo API responses.

Resource bodies are passed through as plain JSON values; only the list
envelope gets a typed view, used for human-readable pagination output.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class PaginatedResponse:
    """One page of a Billingo list endpoint."""

    data: list[Any]
    total: int
    per_page: int = 25
    current_page: int = 1
    last_page: int = 1

    @property
    def has_more(self) -> bool:
        """Check if there are more pages after this one."""
        return self.current_page < self.last_page

    @classmethod
    def from_dict(cls, body: Any, page: int = 1, per_page: int = 25) -> "PaginatedResponse":
        """Create from API response body.

        Endpoints that answer with a bare list are treated as a single page.
        """
        if isinstance(body, list):
            return cls(data=body, total=len(body), per_page=per_page, current_page=page, last_page=page)

        body = body or {}
        data = body.get("data") or []
        return cls(
            data=data,
            total=_as_int(body.get("total"), len(data)),
            per_page=_as_int(body.get("per_page"), per_page),
            current_page=_as_int(body.get("current_page"), page),
            last_page=_as_int(body.get("last_page"), page),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        return {
            "data": self.data,
            "total": self.total,
            "per_page": self.per_page,
            "current_page": self.current_page,
            "last_page": self.last_page,
        }


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
