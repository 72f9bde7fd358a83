"""Identity blocklist — blocked email addresses and IP hashes per site.

Entries live for the lifetime of the process.  There is no expiry and no
unblock operation; a repeated block for the same identity overwrites the
previous entry.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from intake.common import normalize_email, utc_now

logger = logging.getLogger(__name__)


class IdentityKind(str, Enum):
    email = "email"
    ip = "ip"


@dataclass
class BlocklistEntry:
    """A blocked identity and why it was blocked."""

    site_id: str
    kind: IdentityKind
    value: str
    reason: str
    actor: Optional[str] = None
    request_id: Optional[str] = None
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()


def _normalize_ip(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


class IdentityBlocklist:
    """Keyed registry of blocked identities: (site, kind, value) -> entry."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[tuple[str, IdentityKind, str], BlocklistEntry] = {}

    def is_blocked(
        self,
        site_id: str,
        email: Optional[str] = None,
        ip_hash: Optional[str] = None,
    ) -> Optional[BlocklistEntry]:
        """Return the matching entry, checking email before IP, or None."""
        email_key = normalize_email(email)
        ip_key = _normalize_ip(ip_hash)
        with self._lock:
            if email_key:
                entry = self._entries.get((site_id, IdentityKind.email, email_key))
                if entry is not None:
                    return entry
            if ip_key:
                return self._entries.get((site_id, IdentityKind.ip, ip_key))
        return None

    def block(
        self,
        site_id: str,
        email: Optional[str] = None,
        ip_hash: Optional[str] = None,
        reason: str = "",
        actor: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> list[BlocklistEntry]:
        """Store one entry per non-empty identity.  Returns the stored entries."""
        stored: list[BlocklistEntry] = []
        identities = (
            (IdentityKind.email, normalize_email(email)),
            (IdentityKind.ip, _normalize_ip(ip_hash)),
        )
        with self._lock:
            for kind, value in identities:
                if not value:
                    continue
                entry = BlocklistEntry(
                    site_id=site_id,
                    kind=kind,
                    value=value,
                    reason=reason or "Blocked by moderator",
                    actor=actor,
                    request_id=request_id,
                )
                self._entries[(site_id, kind, value)] = entry
                stored.append(entry)

        if stored:
            logger.info(
                "Blocked %s on site %s (%s)",
                ", ".join(e.kind.value for e in stored),
                site_id,
                stored[0].reason,
            )
        return stored

    def list_entries(self, site_id: str) -> list[BlocklistEntry]:
        """Return all entries for *site_id*, newest first."""
        with self._lock:
            entries = [e for e in self._entries.values() if e.site_id == site_id]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries
