"""Small helpers shared by the stores: timestamps, ids and pagination."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def new_request_id() -> str:
    """Server-generated correlation id, used when the client sends none."""
    return f"srv-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def normalize_email(value: object) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


@dataclass
class Pagination:
    """Offset pagination metadata returned with list results."""

    total: int
    limit: int
    offset: int
    has_more: bool = False


@dataclass
class Page(Generic[T]):
    """One page of records plus the unpaginated count."""

    items: list[T] = field(default_factory=list)
    pagination: Pagination = field(default_factory=lambda: Pagination(0, 20, 0))

    @property
    def count(self) -> int:
        return self.pagination.total


def paginate(records: Sequence[T], limit: int = 20, offset: int = 0) -> Page[T]:
    """Slice *records* and attach pagination metadata."""
    limit = limit if limit > 0 else 20
    offset = max(offset, 0)
    items = list(records[offset : offset + limit])
    return Page(
        items=items,
        pagination=Pagination(
            total=len(records),
            limit=limit,
            offset=offset,
            has_more=offset + limit < len(records),
        ),
    )
