"""
Shared Models

Base wire model, pagination envelopes and key-value metadata.
Every model serialises to the camelCase JSON used by the WeatherGuard API.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


T = TypeVar("T")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """
    Base for everything that crosses the wire or lands in the KV store.

    Fields are snake_case in Python and camelCase in JSON. Unknown fields
    sent by the backend are kept so a cached copy round-trips unchanged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> Dict[str, Any]:
        """JSON-safe dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class ResourceRecord(WireModel):
    """Common shape of every cached resource."""

    id: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class KVMetadata(WireModel):
    """
    Metadata written alongside every primary and index entry.

    Consumed by external observability tooling; never read back by
    the data services themselves.
    """

    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class PaginationQuery(WireModel):
    """Page request. Pages are 1-based."""

    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)
    order_by: Optional[str] = None
    descending: bool = False

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size


class PagedResult(WireModel, Generic[T]):
    """One page of results plus totals over the whole result set."""

    items: List[T] = Field(default_factory=list)
    total_count: int = 0
    page_number: int = 1
    page_size: int = 10
    total_pages: int = 0

    @classmethod
    def from_window(
        cls,
        items: List[Any],
        pagination: PaginationQuery,
    ) -> "PagedResult":
        """Slice a fully materialised result list down to the requested page."""
        total = len(items)
        start = pagination.offset
        return cls(
            items=items[start:start + pagination.page_size],
            total_count=total,
            page_number=pagination.page_number,
            page_size=pagination.page_size,
            total_pages=math.ceil(total / pagination.page_size),
        )
