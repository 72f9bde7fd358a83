"""Comment intake, listing, moderation and reporting API router.

Prefix: ``/api/sites/{site_id}``
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from intake.errors import (
    CommentsDisabledError,
    CommentThreadError,
    InvalidReportReasonError,
    InvalidStatusError,
    NotFoundError,
)
from intake.moderation.models import REPORT_REASONS, TargetType
from intake.service import IntakeService
from web.backend.app.dependencies import build_context, get_service
from web.backend.app.models.api import (
    BulkCommentResponse,
    BulkStatusUpdateRequest,
    CommentCreatedResponse,
    CommentListResponse,
    CommentRequest,
    CommentResponse,
    PaginationResponse,
    ReportReasonsResponse,
    ReportRequest,
    StatusUpdateRequest,
    to_wire,
)

router = APIRouter(prefix="/api/sites/{site_id}", tags=["comments"])


def _comment(c) -> CommentResponse:
    return CommentResponse.model_validate(to_wire(c))


def _list_response(page) -> CommentListResponse:
    return CommentListResponse(
        comments=[_comment(c) for c in page.items],
        count=page.count,
        pagination=PaginationResponse.model_validate(to_wire(page.pagination)),
    )


def _rejected(status: str, message: str, details: list[dict], request_id: Optional[str], flags=()):
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "status": status,
            "error": message,
            "spamFlags": list(flags),
            "details": details,
            "requestId": request_id,
        },
    )


def _create(
    site_id: str,
    target_type: TargetType,
    target_id: str,
    body: CommentRequest,
    request: Request,
    service: IntakeService,
):
    context = build_context(
        request,
        honeypot=body.honeypot,
        request_id=body.request_id,
        started_at=body.started_at,
        rate_limit_bypass=body.rate_limit_bypass,
    )
    try:
        outcome = service.submit_comment(
            site_id,
            target_type,
            target_id,
            body.content,
            context,
            author_name=body.author_name,
            author_email=body.author_email,
            author_website=body.author_website,
            user_id=body.user_id,
            parent_id=body.parent_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CommentsDisabledError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except CommentThreadError as e:
        return _rejected(
            "rejected",
            "Validation failed",
            [{"field": e.field, "message": str(e), "rule": "thread"}],
            context.request_id,
            ["validation"],
        )

    result = outcome.result
    if outcome.comment is None:
        return _rejected(
            result.status.value,
            outcome.message,
            [{"field": v.field, "message": v.message, "rule": v.rule} for v in result.validation],
            context.request_id,
            [f.value for f in result.spam_flags],
        )

    return CommentCreatedResponse(
        status=outcome.comment.status.value,
        message=outcome.message,
        spam_flags=[f.value for f in result.spam_flags],
        comment=_comment(outcome.comment),
    )


def _list_target(
    service: IntakeService,
    site_id: str,
    target_type: TargetType,
    target_id: str,
    status: str,
    limit: int,
    offset: int,
) -> CommentListResponse:
    try:
        page = service.list_comments(
            site_id,
            target_type=target_type,
            target_id=target_id,
            status=status,
            limit=limit,
            offset=offset,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _list_response(page)


# =========================================================================
# Public threads
# =========================================================================


@router.post("/pages/{page_id}/comments", status_code=201, response_model=CommentCreatedResponse)
def create_page_comment(
    site_id: str,
    page_id: str,
    body: CommentRequest,
    request: Request,
    service: IntakeService = Depends(get_service),
):
    """Post a comment on a page."""
    return _create(site_id, TargetType.page, page_id, body, request, service)


@router.post("/posts/{post_id}/comments", status_code=201, response_model=CommentCreatedResponse)
def create_post_comment(
    site_id: str,
    post_id: str,
    body: CommentRequest,
    request: Request,
    service: IntakeService = Depends(get_service),
):
    """Post a comment on a blog post."""
    return _create(site_id, TargetType.post, post_id, body, request, service)


@router.get("/pages/{page_id}/comments", response_model=CommentListResponse)
def list_page_comments(
    site_id: str,
    page_id: str,
    status: str = Query("approved"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IntakeService = Depends(get_service),
):
    return _list_target(service, site_id, TargetType.page, page_id, status, limit, offset)


@router.get("/posts/{post_id}/comments", response_model=CommentListResponse)
def list_post_comments(
    site_id: str,
    post_id: str,
    status: str = Query("approved"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IntakeService = Depends(get_service),
):
    return _list_target(service, site_id, TargetType.post, post_id, status, limit, offset)


# =========================================================================
# Moderation
# =========================================================================


@router.get("/comments/report-reasons", response_model=ReportReasonsResponse)
def report_reasons(site_id: str):
    """Reasons accepted by the report endpoint."""
    return ReportReasonsResponse(reasons=list(REPORT_REASONS))


@router.get("/comments", response_model=CommentListResponse)
def list_comments(
    site_id: str,
    status: Optional[str] = Query(None),
    target_type: Optional[str] = Query(None, alias="targetType"),
    target_id: Optional[str] = Query(None, alias="targetId"),
    request_id: Optional[str] = Query(None, alias="requestId"),
    q: Optional[str] = Query(None),
    parent_id: Optional[str] = Query(None, alias="parentId"),
    parent_only: bool = Query(False, alias="parentOnly"),
    sort: str = Query("newest", pattern="^(newest|oldest)$"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IntakeService = Depends(get_service),
):
    """Admin listing across every thread of a site."""
    try:
        page = service.list_comments(
            site_id,
            status=status,
            target_type=target_type,
            target_id=target_id,
            request_id=request_id,
            q=q,
            parent_id=parent_id,
            parent_only=parent_only,
            sort=sort,
            limit=limit,
            offset=offset,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _list_response(page)


@router.patch("/comments", response_model=BulkCommentResponse)
def bulk_update_comments(
    site_id: str,
    body: BulkStatusUpdateRequest,
    service: IntakeService = Depends(get_service),
):
    """Apply one status to many comments."""
    try:
        result = service.bulk_update_comments(
            site_id,
            body.ids,
            body.status,
            reviewed_by=body.reviewed_by,
            actor=body.actor,
            rejection_reason=body.rejection_reason,
            block_reason=body.block_reason,
            request_id=body.request_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not result.updated:
        raise HTTPException(status_code=404, detail="No matching comments found")
    return BulkCommentResponse(
        updated=[_comment(c) for c in result.updated],
        updated_count=len(result.updated),
        missing_ids=result.missing_ids,
    )


@router.get("/comments/{comment_id}", response_model=CommentResponse)
def get_comment(site_id: str, comment_id: str, service: IntakeService = Depends(get_service)):
    try:
        return _comment(service.get_comment(site_id, comment_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/comments/{comment_id}", response_model=CommentResponse)
def update_comment(
    site_id: str,
    comment_id: str,
    body: StatusUpdateRequest,
    service: IntakeService = Depends(get_service),
):
    """Move a comment to a new moderation status."""
    try:
        comment = service.update_comment_status(
            site_id,
            comment_id,
            body.status,
            reviewed_by=body.reviewed_by,
            actor=body.actor,
            rejection_reason=body.rejection_reason,
            block_reason=body.block_reason,
            request_id=body.request_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _comment(comment)


@router.post("/comments/{comment_id}/report", status_code=201, response_model=CommentResponse)
def report_comment(
    site_id: str,
    comment_id: str,
    body: ReportRequest,
    service: IntakeService = Depends(get_service),
):
    """Flag a comment; enough reports on an approved comment mark it spam."""
    try:
        comment = service.report_comment(
            site_id, comment_id, body.reason, actor=body.actor, request_id=body.request_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidReportReasonError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _comment(comment)
