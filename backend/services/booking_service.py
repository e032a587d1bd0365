"""
Booking Service

Consultation bookings pause a lead's drips; cancellations resume them.

- booking_created: record the booking, pause active enrollments and their
  pending messages, queue a one-off confirmation email.
- booking_cancelled: cancel the booking and, once no other consultation is
  scheduled, resume the paused enrollments with messages re-staggered from now.
- complete_booking: mark the consultation held and optionally start the
  post-consultation pathway.

Calendly may deliver the same event more than once; bookings are keyed by
sha256(email|scheduled_at|event) so repeats are no-ops.
"""
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import config
from models import (
    Booking,
    BookingKind,
    BookingSource,
    BookingStatus,
    EnrollmentStatus,
    InteractionKind,
    Lead,
    MessageStatus,
    ScheduledMessage,
    new_id,
)
from services.email_templates import CONSULTATION_CHECKLISTS
from services.enrollment_service import enrollment_service
from services.lead_store import lead_store
from services.pathway_selector import post_consultation_pathway
from utils.clock import as_utc

logger = logging.getLogger(__name__)

BOOKING_CREATED_EVENT = "invitee.created"
BOOKING_CANCELLED_EVENT = "invitee.canceled"

PAUSE_REASONS = {
    BookingKind.GENERAL: "General consultation booked",
    BookingKind.ESTATE: "Estate planning consultation booked",
    BookingKind.BUSINESS: "Business formation consultation booked",
    BookingKind.BRAND: "Brand protection consultation booked",
    BookingKind.COUNSEL: "Outside counsel consultation booked",
    BookingKind.VIP: "VIP consultation booked",
}
PAUSE_SUFFIX = "consultation booked"

CONFIRMATION_SUBJECTS = {
    BookingKind.GENERAL: "Your Consultation is Confirmed - {{firstName}}",
    BookingKind.ESTATE: "Your Estate Planning Consultation is Confirmed",
    BookingKind.BUSINESS: "Your Business Strategy Consultation is Confirmed",
    BookingKind.BRAND: "Your Brand Protection Consultation is Confirmed",
    BookingKind.COUNSEL: "Your Outside Counsel Discussion is Confirmed",
    BookingKind.VIP: "Your VIP Strategic Consultation is Confirmed",
}
CONFIRMATION_SERVICE = {
    BookingKind.GENERAL: "Strategic Legal",
    BookingKind.ESTATE: "Estate Planning",
    BookingKind.BUSINESS: "Business Formation",
    BookingKind.BRAND: "Brand Protection",
    BookingKind.COUNSEL: "Outside Counsel",
    BookingKind.VIP: "VIP Strategic",
}


def kind_from_event_name(event_name: Optional[str]) -> BookingKind:
    name = (event_name or "").lower()
    if "estate" in name:
        return BookingKind.ESTATE
    if "business" in name or "formation" in name:
        return BookingKind.BUSINESS
    if "brand" in name or "trademark" in name:
        return BookingKind.BRAND
    if "counsel" in name:
        return BookingKind.COUNSEL
    if "vip" in name or "priority" in name:
        return BookingKind.VIP
    return BookingKind.GENERAL


def event_key(email: str, scheduled_at: Optional[datetime], event: str) -> str:
    stamp = scheduled_at.isoformat() if scheduled_at else ""
    raw = f"{email.lower()}|{stamp}|{event}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class BookingService:
    def __init__(self, store=None, enroller=None):
        self.store = store or lead_store
        self.enroller = enroller or enrollment_service

    @property
    def clock(self):
        return self.store.clock

    async def booking_created(
        self,
        email: str,
        kind: BookingKind = BookingKind.GENERAL,
        scheduled_at: Optional[datetime] = None,
        source: BookingSource = BookingSource.WEBHOOK,
        payload: Optional[Dict[str, Any]] = None,
        first_name: Optional[str] = None,
        send_confirmation: bool = True,
    ) -> Dict[str, Any]:
        email = email.strip().lower()
        kind = BookingKind(kind)
        key = event_key(email, scheduled_at, BOOKING_CREATED_EVENT)

        async with self.store.email_lock(email):
            existing = await self.store.find_booking_by_event_key(key)
            if existing:
                logger.info(f"Duplicate booking event ignored for booking {existing['id']}")
                return {"booking_id": existing["id"], "duplicate": True, "paused_enrollments": []}

            now = self.clock.now()
            booking = Booking(
                id=new_id("BKG", now),
                email=email,
                kind=kind,
                scheduled_at=scheduled_at,
                source=BookingSource(source),
                payload=payload or {},
                event_key=key,
                created_at=now,
                updated_at=now,
            )
            await self.store.insert_booking(booking)

            reason = PAUSE_REASONS[kind]
            paused: List[Dict[str, Any]] = []
            for enrollment in await self.store.find_enrollments(email, statuses=[EnrollmentStatus.ACTIVE]):
                changed = await self.store.set_enrollment_status(
                    enrollment["id"],
                    EnrollmentStatus.PAUSED,
                    pause_reason=reason,
                    from_statuses=[EnrollmentStatus.ACTIVE],
                )
                if not changed:
                    continue
                count = await self.store.set_messages_status(
                    [enrollment["id"]], [MessageStatus.PENDING], MessageStatus.PAUSED
                )
                paused.append({**enrollment, "paused_messages": count})

        lead = await self.store.latest_lead_for_email(email)
        lead_id = lead["id"] if lead else None
        first_name = first_name or (lead or {}).get("first_name")

        await self.store.append_interaction(
            lead_id,
            InteractionKind.BOOKING_CREATED,
            {"booking_id": booking.id, "kind": kind.value, "source": BookingSource(source).value},
        )
        for enrollment in paused:
            await self.store.append_interaction(
                enrollment["lead_id"],
                InteractionKind.ENROLLMENT_PAUSED,
                {
                    "enrollment_id": enrollment["id"],
                    "pathway": enrollment["pathway_name"],
                    "reason": reason,
                    "messages": enrollment["paused_messages"],
                },
            )
        await self.store.touch_lead(lead_id)

        confirmation_id = None
        if send_confirmation:
            confirmation_id = await self._queue_confirmation(booking, lead_id, first_name)

        logger.info(f"Booking {booking.id} ({kind.value}) recorded, {len(paused)} enrollments paused")
        return {
            "booking_id": booking.id,
            "duplicate": False,
            "paused_enrollments": [e["id"] for e in paused],
            "confirmation_message_id": confirmation_id,
        }

    async def _queue_confirmation(self, booking: Booking, lead_id: Optional[str], first_name: Optional[str]) -> str:
        """One-off confirmation, outside any enrollment, due immediately."""
        now = self.clock.now()
        kind = BookingKind(booking.kind)
        when = booking.scheduled_at.strftime("%A, %B %d at %I:%M %p UTC") if booking.scheduled_at else "your selected time"
        message = ScheduledMessage(
            id=new_id("MSG", now),
            enrollment_id=None,
            lead_id=lead_id,
            email=booking.email,
            first_name=first_name,
            subject_template=CONFIRMATION_SUBJECTS[kind],
            body_template_id="consultation_confirmation",
            send_at=now,
            context={
                "serviceName": CONFIRMATION_SERVICE[kind],
                "consultationTime": when,
                "checklist": CONSULTATION_CHECKLISTS[kind],
                "ctaUrl": config.CALENDLY_LINKS["general"],
            },
            created_at=now,
            updated_at=now,
        )
        await self.store.insert_messages([message])
        return message.id

    async def booking_cancelled(
        self,
        email: str,
        kind: Optional[BookingKind] = None,
        scheduled_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        email = email.strip().lower()
        stagger = timedelta(hours=config.RESUME_STAGGER_HOURS)

        async with self.store.email_lock(email):
            scheduled = await self.store.find_bookings(email, [BookingStatus.SCHEDULED])
            matched = [
                b for b in scheduled
                if (kind is None or b["kind"] == BookingKind(kind).value)
                and (scheduled_at is None or b.get("scheduled_at") is None or _same_instant(b["scheduled_at"], scheduled_at))
            ]
            if not matched:
                logger.info("Cancellation with no scheduled booking ignored")
                return {"cancelled_bookings": [], "resumed_enrollments": []}

            for booking in matched:
                await self.store.set_booking_status(booking["id"], BookingStatus.CANCELLED)

            resumed: List[Dict[str, Any]] = []
            if len(matched) == len(scheduled):
                now = self.clock.now()
                for enrollment in await self.store.find_enrollments(email, statuses=[EnrollmentStatus.PAUSED]):
                    if not (enrollment.get("pause_reason") or "").endswith(PAUSE_SUFFIX):
                        continue
                    changed = await self.store.set_enrollment_status(
                        enrollment["id"],
                        EnrollmentStatus.ACTIVE,
                        pause_reason=None,
                        from_statuses=[EnrollmentStatus.PAUSED],
                    )
                    if not changed:
                        continue
                    messages = await self.store.messages_for_enrollment(enrollment["id"], [MessageStatus.PAUSED])
                    for position, message in enumerate(messages):
                        await self.store.reschedule_message(
                            message["id"], now + stagger * position, MessageStatus.PENDING
                        )
                    resumed.append({**enrollment, "resumed_messages": len(messages)})

        lead = await self.store.latest_lead_for_email(email)
        lead_id = lead["id"] if lead else None
        await self.store.append_interaction(
            lead_id,
            InteractionKind.BOOKING_CANCELLED,
            {"booking_ids": [b["id"] for b in matched]},
        )
        for enrollment in resumed:
            await self.store.append_interaction(
                enrollment["lead_id"],
                InteractionKind.ENROLLMENT_RESUMED,
                {
                    "enrollment_id": enrollment["id"],
                    "pathway": enrollment["pathway_name"],
                    "messages": enrollment["resumed_messages"],
                },
            )
        await self.store.touch_lead(lead_id)

        logger.info(f"Booking cancelled for lead {lead_id}, {len(resumed)} enrollments resumed")
        return {
            "cancelled_bookings": [b["id"] for b in matched],
            "resumed_enrollments": [e["id"] for e in resumed],
        }

    async def complete_booking(
        self,
        email: str,
        kind: Optional[BookingKind] = None,
        enroll_post_consultation: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """Mark the latest scheduled consultation completed. None if there is none."""
        email = email.strip().lower()
        async with self.store.email_lock(email):
            scheduled = await self.store.find_bookings(
                email, [BookingStatus.SCHEDULED], kind=BookingKind(kind).value if kind else None
            )
            if not scheduled:
                return None

            booking = scheduled[0]
            await self.store.set_booking_status(booking["id"], BookingStatus.COMPLETED)
        booking_kind = BookingKind(booking["kind"])

        lead = await self.store.latest_lead_for_email(email)
        lead_id = lead["id"] if lead else None
        await self.store.append_interaction(
            lead_id,
            InteractionKind.BOOKING_COMPLETED,
            {"booking_id": booking["id"], "kind": booking_kind.value},
        )

        enrollment_id = None
        if enroll_post_consultation and lead:
            enrollment = await self.enroller.enroll_by_name(
                Lead(**lead),
                post_consultation_pathway(booking_kind),
                trigger=f"booking-completed:{booking_kind.value}",
            )
            enrollment_id = enrollment.id

        logger.info(f"Booking {booking['id']} completed")
        return {"booking_id": booking["id"], "enrollment_id": enrollment_id}


def _same_instant(stored: datetime, given: datetime) -> bool:
    return abs((as_utc(stored) - as_utc(given)).total_seconds()) < 1


booking_service = BookingService()
