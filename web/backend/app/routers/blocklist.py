"""Identity blocklist API router.

Prefix: ``/api/sites/{site_id}/blocklist``
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from intake.errors import NotFoundError
from intake.service import IntakeService
from web.backend.app.dependencies import get_service
from web.backend.app.models.api import (
    BlocklistEntryResponse,
    BlocklistResponse,
    BlockRequest,
    to_wire,
)

router = APIRouter(prefix="/api/sites/{site_id}/blocklist", tags=["blocklist"])


def _entries(entries) -> BlocklistResponse:
    return BlocklistResponse(
        entries=[BlocklistEntryResponse.model_validate(to_wire(e)) for e in entries],
        count=len(entries),
    )


@router.get("", response_model=BlocklistResponse)
def list_blocklist(site_id: str, service: IntakeService = Depends(get_service)):
    try:
        return _entries(service.list_blocklist(site_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("", status_code=201, response_model=BlocklistResponse)
def block_identity(site_id: str, body: BlockRequest, service: IntakeService = Depends(get_service)):
    """Block an email address and/or IP hash for the site."""
    if not (body.email or "").strip() and not (body.ip_hash or "").strip():
        raise HTTPException(status_code=400, detail="Provide an email or ipHash to block")
    try:
        entries = service.block_identity(
            site_id,
            email=body.email,
            ip_hash=body.ip_hash,
            reason=body.reason,
            actor=body.actor,
            request_id=body.request_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _entries(entries)
