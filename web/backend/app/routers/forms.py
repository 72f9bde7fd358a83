"""Form submission intake and moderation API router.

Prefix: ``/api/sites/{site_id}/forms``
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from intake.errors import InactiveFormError, InvalidStatusError, NotFoundError
from intake.service import IntakeService
from web.backend.app.dependencies import build_context, get_service
from web.backend.app.models.api import (
    BulkStatusUpdateRequest,
    BulkSubmissionResponse,
    ContactListResponse,
    ContactResponse,
    ContactStatusRequest,
    FormSubmissionRequest,
    PaginationResponse,
    StatusUpdateRequest,
    SubmissionCreatedResponse,
    SubmissionListResponse,
    SubmissionResponse,
    to_wire,
)

router = APIRouter(prefix="/api/sites/{site_id}/forms", tags=["forms"])


def _submission(s) -> SubmissionResponse:
    return SubmissionResponse.model_validate(to_wire(s))


def _contact(c) -> ContactResponse:
    return ContactResponse.model_validate(to_wire(c))


# =========================================================================
# Public intake
# =========================================================================


@router.post("/{form_id}/submissions", status_code=201, response_model=SubmissionCreatedResponse)
def submit_form(
    site_id: str,
    form_id: str,
    body: FormSubmissionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: IntakeService = Depends(get_service),
):
    """Validate, classify and store a form submission."""
    context = build_context(
        request,
        honeypot=body.honeypot,
        request_id=body.request_id,
        started_at=body.started_at,
        rate_limit_bypass=body.rate_limit_bypass,
    )
    override = body.contact_share_override.model_dump() if body.contact_share_override else None
    try:
        outcome = service.submit_form(
            site_id,
            form_id,
            body.values,
            context,
            page_id=body.page_id,
            post_id=body.post_id,
            contact_share_override=override,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InactiveFormError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = outcome.result
    if outcome.submission is None:
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "status": result.status.value,
                "error": outcome.message,
                "spamFlags": [f.value for f in result.spam_flags],
                "details": [
                    {"field": v.field, "message": v.message, "rule": v.rule}
                    for v in result.validation
                ],
                "requestId": context.request_id,
            },
        )

    if outcome.webhooks:
        background_tasks.add_task(service.dispatch, outcome.webhooks)

    return SubmissionCreatedResponse(
        status=outcome.submission.status.value,
        message=outcome.message,
        spam_flags=[f.value for f in result.spam_flags],
        submission=_submission(outcome.submission),
        contact=_contact(outcome.contact) if outcome.contact else None,
    )


# =========================================================================
# Submission moderation
# =========================================================================


@router.get("/{form_id}/submissions", response_model=SubmissionListResponse)
def list_submissions(
    site_id: str,
    form_id: str,
    status: Optional[str] = Query(None),
    request_id: Optional[str] = Query(None, alias="requestId"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IntakeService = Depends(get_service),
):
    """List submissions for a form, newest first."""
    try:
        page = service.list_submissions(
            site_id, form_id, status=status, request_id=request_id, limit=limit, offset=offset
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return SubmissionListResponse(
        submissions=[_submission(s) for s in page.items],
        count=page.count,
        pagination=PaginationResponse.model_validate(to_wire(page.pagination)),
    )


@router.patch("/{form_id}/submissions", response_model=BulkSubmissionResponse)
def bulk_update_submissions(
    site_id: str,
    form_id: str,
    body: BulkStatusUpdateRequest,
    service: IntakeService = Depends(get_service),
):
    """Apply one status to many submissions."""
    try:
        result = service.bulk_update_submissions(
            site_id,
            form_id,
            body.ids,
            body.status,
            reviewed_by=body.reviewed_by,
            actor=body.actor,
            request_id=body.request_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not result.updated:
        raise HTTPException(status_code=404, detail="No matching submissions found")
    return BulkSubmissionResponse(
        updated=[_submission(s) for s in result.updated],
        updated_count=len(result.updated),
        missing_ids=result.missing_ids,
    )


@router.get("/{form_id}/submissions/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    site_id: str,
    form_id: str,
    submission_id: str,
    service: IntakeService = Depends(get_service),
):
    try:
        return _submission(service.get_submission(site_id, form_id, submission_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{form_id}/submissions/{submission_id}", response_model=SubmissionResponse)
def update_submission(
    site_id: str,
    form_id: str,
    submission_id: str,
    body: StatusUpdateRequest,
    service: IntakeService = Depends(get_service),
):
    """Move a submission to a new moderation status."""
    try:
        submission = service.update_submission_status(
            site_id,
            form_id,
            submission_id,
            body.status,
            reviewed_by=body.reviewed_by,
            actor=body.actor,
            request_id=body.request_id,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _submission(submission)


# =========================================================================
# Contacts
# =========================================================================


@router.get("/{form_id}/contacts", response_model=ContactListResponse)
def list_contacts(
    site_id: str,
    form_id: str,
    status: Optional[str] = Query(None),
    request_id: Optional[str] = Query(None, alias="requestId"),
    limit: int = Query(20, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IntakeService = Depends(get_service),
):
    """List contacts shared through a form, most recently updated first."""
    try:
        page = service.list_contacts(
            site_id, form_id, status=status, request_id=request_id, limit=limit, offset=offset
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ContactListResponse(
        contacts=[_contact(c) for c in page.items],
        count=page.count,
        pagination=PaginationResponse.model_validate(to_wire(page.pagination)),
    )


@router.patch("/{form_id}/contacts/{contact_id}", response_model=ContactResponse)
def update_contact(
    site_id: str,
    form_id: str,
    contact_id: str,
    body: ContactStatusRequest,
    background_tasks: BackgroundTasks,
    service: IntakeService = Depends(get_service),
):
    """Change a contact's status and notify the form's webhook."""
    try:
        contact, jobs = service.update_contact_status(
            site_id, form_id, contact_id, body.status, actor=body.actor, request_id=body.request_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if jobs:
        background_tasks.add_task(service.dispatch, jobs)
    return _contact(contact)
