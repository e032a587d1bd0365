"""
Admin API Routes

Read-only dashboard projections over the store, plus operator actions:
manual bookings, cancelling enrollments, and running scheduled jobs now.
Operators are trusted; there is no auth layer in front of these routes.
"""
from datetime import datetime, timedelta
from typing import Optional
import logging

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, EmailStr

from job_runner import JOB_RUNNERS
from models import BookingKind, BookingSource, Lead
from services.booking_service import booking_service
from services.enrollment_service import enrollment_service
from services.lead_store import (
    BOOKINGS_COLLECTION,
    ENROLLMENTS_COLLECTION,
    MESSAGES_COLLECTION,
    lead_store,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

HIGH_VALUE_SCORE = 70


class ManualBookingRequest(BaseModel):
    email: EmailStr
    kind: BookingKind = BookingKind.GENERAL
    scheduled_at: Optional[datetime] = None
    first_name: Optional[str] = None
    send_confirmation: bool = True


class CancelBookingRequest(BaseModel):
    email: EmailStr
    kind: Optional[BookingKind] = None
    scheduled_at: Optional[datetime] = None


class CompleteBookingRequest(BaseModel):
    email: EmailStr
    kind: Optional[BookingKind] = None
    enroll_post_consultation: bool = True


class ManualEnrollmentRequest(BaseModel):
    lead_id: str
    pathway_name: str


class CancelEnrollmentRequest(BaseModel):
    reason: str = "cancelled by operator"


# ============================================================================
# DASHBOARD (read-only)
# ============================================================================

@router.get("/leads")
async def list_leads(
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    submission_kind: Optional[str] = None,
    priority: Optional[str] = None,
):
    leads = await lead_store.list_leads(limit=limit, skip=skip, submission_kind=submission_kind, priority=priority)
    return {"leads": leads, "count": len(leads)}


@router.get("/leads/{lead_id}")
async def get_lead(lead_id: str):
    lead = await lead_store.get_lead(lead_id)
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    return {
        "lead": lead,
        "interactions": await lead_store.list_interactions(lead_id),
        "enrollments": await lead_store.enrollments_for_lead(lead_id),
        "messages": await lead_store.messages_for_email(lead["email"]),
    }


@router.get("/stats")
async def get_stats():
    since = lead_store.clock.now() - timedelta(hours=24)
    return {
        "leads": {
            "total": await lead_store.count_leads(),
            "high_value": await lead_store.count_leads(min_score=HIGH_VALUE_SCORE),
            "last_24h": await lead_store.count_leads(since=since),
        },
        "enrollments": await lead_store.status_counts(ENROLLMENTS_COLLECTION),
        "messages": await lead_store.status_counts(MESSAGES_COLLECTION),
        "bookings": await lead_store.status_counts(BOOKINGS_COLLECTION),
    }


# ============================================================================
# BOOKINGS
# ============================================================================

@router.post("/bookings")
async def create_booking(request: ManualBookingRequest):
    """Record a consultation booked outside the scheduling service."""
    return await booking_service.booking_created(
        request.email,
        kind=request.kind,
        scheduled_at=request.scheduled_at,
        source=BookingSource.MANUAL,
        payload={"entered_by": "operator"},
        first_name=request.first_name,
        send_confirmation=request.send_confirmation,
    )


@router.post("/bookings/cancel")
async def cancel_booking(request: CancelBookingRequest):
    return await booking_service.booking_cancelled(
        request.email, kind=request.kind, scheduled_at=request.scheduled_at
    )


@router.post("/bookings/complete")
async def complete_booking(request: CompleteBookingRequest):
    result = await booking_service.complete_booking(
        request.email, kind=request.kind, enroll_post_consultation=request.enroll_post_consultation
    )
    if result is None:
        raise HTTPException(status_code=404, detail="No scheduled consultation for this email")
    return result


# ============================================================================
# ENROLLMENTS
# ============================================================================

@router.post("/enrollments")
async def create_enrollment(request: ManualEnrollmentRequest):
    """Enroll an existing lead in a named pathway (e.g. re-engagement)."""
    lead = await lead_store.get_lead(request.lead_id)
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    try:
        enrollment = await enrollment_service.enroll_by_name(Lead(**lead), request.pathway_name, trigger="manual")
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown pathway")
    return {"enrollment_id": enrollment.id, "pathway": enrollment.pathway_name}


@router.post("/enrollments/{enrollment_id}/cancel")
async def cancel_enrollment(enrollment_id: str, request: Optional[CancelEnrollmentRequest] = None):
    reason = request.reason if request else "cancelled by operator"
    result = await enrollment_service.cancel_enrollment(enrollment_id, reason)
    if result is None:
        raise HTTPException(status_code=404, detail="No open enrollment with that id")
    return result


# ============================================================================
# JOBS
# ============================================================================

@router.post("/jobs/{job_id}/run")
async def run_job_now(job_id: str):
    runner = JOB_RUNNERS.get(job_id)
    if runner is None:
        raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}")
    logger.info(f"Admin run-now: {job_id}")
    return await runner()
