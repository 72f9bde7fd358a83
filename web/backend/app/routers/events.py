"""Audit event API router.

Prefix: ``/api/sites/{site_id}/events``
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from intake.errors import NotFoundError
from intake.security.audit_log import AuditKind, event_to_dict
from intake.service import IntakeService
from web.backend.app.dependencies import get_service
from web.backend.app.models.api import (
    AuditEventResponse,
    EventExportResponse,
    EventListResponse,
    PaginationResponse,
    to_wire,
)

router = APIRouter(prefix="/api/sites/{site_id}/events", tags=["events"])


def _kind(kind: Optional[str]) -> Optional[AuditKind]:
    if not kind:
        return None
    try:
        return AuditKind(kind)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown event kind '{kind}'")


@router.get("", response_model=EventListResponse)
def list_events(
    site_id: str,
    kind: Optional[str] = Query(None),
    request_id: Optional[str] = Query(None, alias="requestId"),
    form_id: Optional[str] = Query(None, alias="formId"),
    comment_id: Optional[str] = Query(None, alias="commentId"),
    contact_id: Optional[str] = Query(None, alias="contactId"),
    submission_id: Optional[str] = Query(None, alias="submissionId"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IntakeService = Depends(get_service),
):
    """List audit events for a site, newest first."""
    try:
        page = service.list_events(
            site_id,
            kind=_kind(kind),
            request_id=request_id,
            form_id=form_id,
            comment_id=comment_id,
            contact_id=contact_id,
            submission_id=submission_id,
            limit=limit,
            offset=offset,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return EventListResponse(
        events=[AuditEventResponse.model_validate(event_to_dict(e)) for e in page.items],
        count=page.count,
        pagination=PaginationResponse.model_validate(to_wire(page.pagination)),
    )


@router.get("/export", response_model=EventExportResponse)
def export_events(
    site_id: str,
    format: str = Query("json", pattern="^(json|csv)$"),
    kind: Optional[str] = Query(None),
    request_id: Optional[str] = Query(None, alias="requestId"),
    form_id: Optional[str] = Query(None, alias="formId"),
    comment_id: Optional[str] = Query(None, alias="commentId"),
    service: IntakeService = Depends(get_service),
):
    """Export the audit log in JSON or CSV format."""
    filters = {
        "kind": _kind(kind),
        "request_id": request_id,
        "form_id": form_id,
        "comment_id": comment_id,
    }
    try:
        content = service.export_events(site_id, format, **filters)
        count = service.list_events(site_id, limit=10000, **filters).count
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return EventExportResponse(format=format, content=content, count=count)
