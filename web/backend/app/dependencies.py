"""Request-scoped helpers shared by the routers."""

from __future__ import annotations

import hashlib
from typing import Optional, Union

from fastapi import Request

from intake.common import new_request_id
from intake.moderation.classifier import IntakeContext
from intake.service import IntakeService

IP_HASH_LENGTH = 32


def get_service(request: Request) -> IntakeService:
    return request.app.state.service


def client_ip(request: Request) -> Optional[str]:
    """First ``x-forwarded-for`` hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client is not None:
        return request.client.host
    return None


def hash_ip(ip: Optional[str]) -> Optional[str]:
    if not ip:
        return None
    return hashlib.sha256(ip.encode("utf-8")).hexdigest()[:IP_HASH_LENGTH]


def build_context(
    request: Request,
    *,
    honeypot: str = "",
    request_id: Optional[str] = None,
    started_at: Optional[Union[float, str]] = None,
    rate_limit_bypass: bool = False,
) -> IntakeContext:
    return IntakeContext(
        honeypot=honeypot,
        ip_hash=hash_ip(client_ip(request)),
        user_agent=request.headers.get("user-agent"),
        request_id=request_id or request.headers.get("x-request-id") or new_request_id(),
        rate_limit_bypass=rate_limit_bypass,
        started_at=started_at,
    )
