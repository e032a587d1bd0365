"""
Booking pause/resume, idempotent webhook events and consultation completion.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from models import BookingKind, BookingSource, Lead, SubmissionKind
from services.booking_service import BookingService, event_key, kind_from_event_name
from services.enrollment_service import EnrollmentService
from services.pathway_catalog import DAY, Pathway, Step
from utils.clock import as_utc

EMAIL = "client@example.com"
CONSULT_AT = datetime(2025, 1, 10, 15, 0, tzinfo=timezone.utc)

FIVE_STEPS = Pathway(
    name="five-step",
    title="Five step test journey",
    steps=tuple(
        Step(delay_ms=i * DAY, subject_template=f"Step {i}", body_template_id="legal_education_general")
        for i in range(5)
    ),
)


async def enrolled_lead(store, clock, sent=2):
    """Lead with an active five-step enrollment, the first `sent` messages already sent."""
    now = clock.now()
    lead = Lead(
        id="LEAD-1",
        email=EMAIL,
        first_name="Grace",
        submission_kind=SubmissionKind.ESTATE,
        score=60,
        created_at=now,
        updated_at=now,
    )
    await store.insert_lead(lead)
    enrollment = await EnrollmentService(store).enroll(lead, FIVE_STEPS)
    messages = await store.messages_for_enrollment(enrollment.id)
    for message in messages[:sent]:
        assert await store.mark_message_sent(message["id"], "sendgrid")
    return lead, enrollment


def drip_messages(messages):
    return [m for m in messages if m.get("enrollment_id")]


@pytest.mark.asyncio
async def test_booking_pauses_and_cancellation_resumes(store, clock):
    lead, enrollment = await enrolled_lead(store, clock)
    service = BookingService(store, EnrollmentService(store))

    created = await service.booking_created(EMAIL, BookingKind.ESTATE, CONSULT_AT, payload={"uuid": "abc"})
    assert created["duplicate"] is False
    assert created["paused_enrollments"] == [enrollment.id]

    stored = await store.get_enrollment(enrollment.id)
    assert stored["status"] == "paused"
    assert stored["pause_reason"] == "Estate planning consultation booked"

    messages = await store.messages_for_email(EMAIL)
    statuses = [m["status"] for m in drip_messages(messages)]
    assert statuses.count("sent") == 2
    assert statuses.count("paused") == 3
    assert "pending" not in statuses

    # The confirmation is a one-off outside the drip, due now
    confirmation = await store.get_message(created["confirmation_message_id"])
    assert confirmation["enrollment_id"] is None
    assert confirmation["status"] == "pending"
    assert confirmation["body_template_id"] == "consultation_confirmation"
    assert confirmation["subject_template"] == "Your Estate Planning Consultation is Confirmed"
    assert confirmation["first_name"] == "Grace"

    clock.advance(days=1)
    cancelled = await service.booking_cancelled(EMAIL, scheduled_at=CONSULT_AT)
    assert cancelled["resumed_enrollments"] == [enrollment.id]
    assert (await store.get_enrollment(enrollment.id))["status"] == "active"

    resumed = await store.messages_for_enrollment(enrollment.id, ["pending"])
    now = clock.now()
    assert [as_utc(m["send_at"]) for m in resumed] == [now, now + timedelta(hours=24), now + timedelta(hours=48)]
    assert [m["step_index"] for m in resumed] == [2, 3, 4]
    assert await store.messages_for_email(EMAIL, ["paused"]) == []

    kinds = [i["kind"] for i in await store.list_interactions(lead.id)]
    assert "booking_created" in kinds
    assert "enrollment_paused" in kinds
    assert "booking_cancelled" in kinds
    assert "enrollment_resumed" in kinds


@pytest.mark.asyncio
async def test_duplicate_booking_event_is_a_noop(store, clock):
    await enrolled_lead(store, clock)
    service = BookingService(store, EnrollmentService(store))

    first = await service.booking_created(EMAIL, BookingKind.GENERAL, CONSULT_AT)
    second = await service.booking_created(EMAIL.upper(), BookingKind.GENERAL, CONSULT_AT)

    assert second["duplicate"] is True
    assert second["booking_id"] == first["booking_id"]
    assert len(await store.find_bookings(EMAIL)) == 1
    confirmations = [m for m in await store.messages_for_email(EMAIL) if m["enrollment_id"] is None]
    assert len(confirmations) == 1


@pytest.mark.asyncio
async def test_resume_waits_for_last_scheduled_booking(store, clock):
    _, enrollment = await enrolled_lead(store, clock)
    service = BookingService(store, EnrollmentService(store))

    other_time = CONSULT_AT + timedelta(days=3)
    await service.booking_created(EMAIL, BookingKind.ESTATE, CONSULT_AT, send_confirmation=False)
    await service.booking_created(EMAIL, BookingKind.BRAND, other_time, send_confirmation=False)

    first_cancel = await service.booking_cancelled(EMAIL, scheduled_at=CONSULT_AT)
    assert len(first_cancel["cancelled_bookings"]) == 1
    assert first_cancel["resumed_enrollments"] == []
    assert (await store.get_enrollment(enrollment.id))["status"] == "paused"

    second_cancel = await service.booking_cancelled(EMAIL, scheduled_at=other_time)
    assert second_cancel["resumed_enrollments"] == [enrollment.id]


@pytest.mark.asyncio
async def test_cancellation_without_booking_is_ignored(store, clock):
    service = BookingService(store, EnrollmentService(store))
    result = await service.booking_cancelled(EMAIL)
    assert result == {"cancelled_bookings": [], "resumed_enrollments": []}


@pytest.mark.asyncio
async def test_operator_paused_enrollment_is_not_resumed(store, clock):
    _, enrollment = await enrolled_lead(store, clock)
    service = BookingService(store, EnrollmentService(store))
    await service.booking_created(EMAIL, BookingKind.GENERAL, CONSULT_AT, send_confirmation=False)
    await store.set_enrollment_status(enrollment.id, "paused", pause_reason="on hold by operator")

    result = await service.booking_cancelled(EMAIL)
    assert result["resumed_enrollments"] == []
    assert (await store.get_enrollment(enrollment.id))["status"] == "paused"


@pytest.mark.asyncio
async def test_complete_booking_starts_post_consultation_pathway(store, clock):
    await enrolled_lead(store, clock)
    service = BookingService(store, EnrollmentService(store))
    await service.booking_created(
        EMAIL, BookingKind.BUSINESS, CONSULT_AT, source=BookingSource.MANUAL, send_confirmation=False
    )

    result = await service.complete_booking(EMAIL)
    assert result["enrollment_id"]
    enrollment = await store.get_enrollment(result["enrollment_id"])
    assert enrollment["pathway_name"] == "post-consultation-business"
    assert enrollment["status"] == "active"
    assert (await store.find_bookings(EMAIL, ["completed"]))[0]["id"] == result["booking_id"]

    assert await service.complete_booking(EMAIL) is None


@pytest.mark.asyncio
async def test_repeated_cancellation_leaves_other_booking_alone(store, clock):
    _, enrollment = await enrolled_lead(store, clock)
    service = BookingService(store, EnrollmentService(store))

    later = CONSULT_AT + timedelta(days=7)
    await service.booking_created(EMAIL, BookingKind.ESTATE, CONSULT_AT, send_confirmation=False)
    second = await service.booking_created(EMAIL, BookingKind.ESTATE, later, send_confirmation=False)

    first_cancel = await service.booking_cancelled(EMAIL, scheduled_at=CONSULT_AT)
    repeat = await service.booking_cancelled(EMAIL, scheduled_at=CONSULT_AT)

    assert len(first_cancel["cancelled_bookings"]) == 1
    assert repeat == {"cancelled_bookings": [], "resumed_enrollments": []}
    still_booked = await store.find_bookings(EMAIL, ["scheduled"])
    assert [b["id"] for b in still_booked] == [second["booking_id"]]
    assert (await store.get_enrollment(enrollment.id))["status"] == "paused"


@pytest.mark.asyncio
async def test_completion_and_cancellation_do_not_both_claim_a_booking(store, clock):
    await enrolled_lead(store, clock)
    service = BookingService(store, EnrollmentService(store))
    created = await service.booking_created(EMAIL, BookingKind.GENERAL, CONSULT_AT, send_confirmation=False)

    completed, cancelled = await asyncio.gather(
        service.complete_booking(EMAIL, enroll_post_consultation=False),
        service.booking_cancelled(EMAIL, scheduled_at=CONSULT_AT),
    )

    assert completed["booking_id"] == created["booking_id"]
    assert cancelled["cancelled_bookings"] == []
    assert (await store.find_bookings(EMAIL, ["completed"]))[0]["id"] == created["booking_id"]
    assert await store.find_bookings(EMAIL, ["cancelled"]) == []


def test_kind_from_event_name():
    assert kind_from_event_name("Wealth Protection - Estate Planning") == BookingKind.ESTATE
    assert kind_from_event_name("Business Formation Call") == BookingKind.BUSINESS
    assert kind_from_event_name("Trademark Review") == BookingKind.BRAND
    assert kind_from_event_name("Outside Counsel Intro") == BookingKind.COUNSEL
    assert kind_from_event_name("Priority Consultation") == BookingKind.VIP
    assert kind_from_event_name(None) == BookingKind.GENERAL


def test_event_key_is_case_insensitive_on_email():
    assert event_key("A@B.com", CONSULT_AT, "invitee.created") == event_key("a@b.com", CONSULT_AT, "invitee.created")
    assert event_key("a@b.com", CONSULT_AT, "invitee.created") != event_key("a@b.com", CONSULT_AT, "invitee.canceled")
