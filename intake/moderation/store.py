"""In-memory tables for form submissions and comments.

Each table owns its lock; reads return copies so callers never mutate stored
records outside :meth:`RecordTable.update`.
"""

from __future__ import annotations

import copy
import threading
from typing import Callable, Generic, Optional, TypeVar

from intake.common import Page, paginate
from intake.moderation.models import Comment, FormSubmission, ModerationStatus, TargetType

T = TypeVar("T")


class RecordTable(Generic[T]):
    """Id-keyed record table with atomic per-record updates."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, T] = {}

    def insert(self, record: T) -> T:
        with self._lock:
            self._records[record.id] = copy.deepcopy(record)  # type: ignore[attr-defined]
        return copy.deepcopy(record)

    def get(self, record_id: str) -> Optional[T]:
        with self._lock:
            record = self._records.get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def update(self, record_id: str, mutate: Callable[[T], None]) -> Optional[T]:
        """Apply *mutate* to the stored record under the table lock."""
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            working = copy.deepcopy(record)
            mutate(working)
            self._records[record_id] = working
            return copy.deepcopy(working)

    def all(self) -> list[T]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SubmissionStore(RecordTable[FormSubmission]):
    """Form submissions, listed newest first."""

    def list_submissions(
        self,
        form_id: str,
        *,
        status: Optional[ModerationStatus] = None,
        request_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Page[FormSubmission]:
        records = [s for s in self.all() if s.form_id == form_id]
        if status:
            records = [s for s in records if s.status == status]
        if request_id:
            records = [s for s in records if s.request_id == request_id]
        records.reverse()
        records.sort(key=lambda s: s.submitted_at, reverse=True)
        return paginate(records, limit, offset)


class CommentStore(RecordTable[Comment]):
    """Comments across all sites and targets."""

    def list_comments(
        self,
        site_id: str,
        *,
        target_type: Optional[TargetType] = None,
        target_id: Optional[str] = None,
        status: Optional[ModerationStatus] = None,
        request_id: Optional[str] = None,
        q: Optional[str] = None,
        parent_id: Optional[str] = None,
        parent_only: bool = False,
        sort: str = "newest",
        limit: int = 20,
        offset: int = 0,
    ) -> Page[Comment]:
        records = [c for c in self.all() if c.site_id == site_id]
        if target_type:
            records = [c for c in records if c.target_type == target_type]
        if target_id:
            records = [c for c in records if c.target_id == target_id]
        if status:
            records = [c for c in records if c.status == status]
        if request_id:
            records = [c for c in records if c.request_id == request_id]
        if parent_only:
            records = [c for c in records if not c.parent_id]
        elif parent_id:
            records = [c for c in records if c.parent_id == parent_id]
        if q:
            needle = q.lower()
            records = [
                c
                for c in records
                if needle in c.content.lower()
                or needle in (c.author_name or "").lower()
                or needle in (c.author_email or "").lower()
            ]
        newest = sort != "oldest"
        if newest:
            records.reverse()
        records.sort(key=lambda c: c.created_at, reverse=newest)
        return paginate(records, limit, offset)

    def depth_of(self, comment_id: str) -> int:
        """Number of ancestors above *comment_id* (a root comment has depth 0)."""
        depth = 0
        seen: set[str] = set()
        with self._lock:
            current = self._records.get(comment_id)
            while current is not None and current.parent_id:
                if current.id in seen:
                    break
                seen.add(current.id)
                depth += 1
                current = self._records.get(current.parent_id)
        return depth
