"""
Lead Store

Single owner of persisted intake state: leads, interactions, drip enrollments,
scheduled messages and consultation bookings. Every other service reads and
writes through here so the collection layout lives in one place.

Writes that span several enrollments (supersession, pause/resume) are
serialized per email with email_lock(); MongoDB multi-document transactions
need a replica set, which single-node deployments do not have.
"""
import asyncio
import logging
import weakref
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from database import database
from models import (
    Booking,
    BookingStatus,
    Enrollment,
    EnrollmentStatus,
    Interaction,
    InteractionKind,
    Lead,
    MessageStatus,
    ScheduledMessage,
)
from services.errors import PersistenceError
from utils.clock import system_clock

logger = logging.getLogger(__name__)

# Collections
LEADS_COLLECTION = "leads"
INTERACTIONS_COLLECTION = "interactions"
ENROLLMENTS_COLLECTION = "enrollments"
MESSAGES_COLLECTION = "scheduled_messages"
BOOKINGS_COLLECTION = "bookings"

OPEN_ENROLLMENT_STATUSES = (EnrollmentStatus.ACTIVE.value, EnrollmentStatus.PAUSED.value)
UNSENT_MESSAGE_STATUSES = (MessageStatus.PENDING.value, MessageStatus.PAUSED.value)


def _values(statuses: Iterable) -> List[str]:
    return [getattr(s, "value", s) for s in statuses]


class LeadStore:
    """MongoDB-backed store. Pass db/clock to bind a specific database (tests)."""

    def __init__(self, db=None, clock=None):
        self._db = db
        self.clock = clock or system_clock
        self._locks = weakref.WeakValueDictionary()

    @property
    def db(self):
        return self._db if self._db is not None else database.get_db()

    def email_lock(self, email: str) -> asyncio.Lock:
        key = (email or "").lower()
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ------------------------------------------------------------------
    # Leads and interactions
    # ------------------------------------------------------------------

    async def insert_lead(self, lead: Lead) -> Lead:
        try:
            await self.db[LEADS_COLLECTION].insert_one(lead.model_dump())
        except Exception as e:
            logger.error(f"Lead insert failed for {lead.id}: {e}")
            raise PersistenceError(str(e)) from e
        return lead

    async def get_lead(self, lead_id: str) -> Optional[Dict[str, Any]]:
        return await self.db[LEADS_COLLECTION].find_one({"id": lead_id}, {"_id": 0})

    async def latest_lead_for_email(self, email: str) -> Optional[Dict[str, Any]]:
        cursor = self.db[LEADS_COLLECTION].find({"email": email.lower()}, {"_id": 0}).sort("created_at", -1).limit(1)
        docs = await cursor.to_list(1)
        return docs[0] if docs else None

    async def touch_lead(self, lead_id: Optional[str]) -> None:
        if not lead_id:
            return
        await self.db[LEADS_COLLECTION].update_one(
            {"id": lead_id}, {"$set": {"updated_at": self.clock.now()}}
        )

    async def list_leads(
        self,
        limit: int = 50,
        skip: int = 0,
        submission_kind: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if submission_kind:
            query["submission_kind"] = submission_kind
        if priority:
            query["priority"] = priority
        cursor = (
            self.db[LEADS_COLLECTION]
            .find(query, {"_id": 0, "form_data": 0})
            .sort("created_at", -1)
            .skip(skip)
            .limit(limit)
        )
        return await cursor.to_list(limit)

    async def append_interaction(
        self,
        lead_id: Optional[str],
        kind: InteractionKind,
        detail: Optional[Dict[str, Any]] = None,
    ) -> Interaction:
        interaction = Interaction(lead_id=lead_id, kind=kind, detail=detail or {}, at=self.clock.now())
        await self.db[INTERACTIONS_COLLECTION].insert_one(interaction.model_dump())
        return interaction

    async def list_interactions(self, lead_id: str) -> List[Dict[str, Any]]:
        cursor = self.db[INTERACTIONS_COLLECTION].find({"lead_id": lead_id}).sort([("at", 1), ("_id", 1)])
        docs = await cursor.to_list(1000)
        for doc in docs:
            doc.pop("_id", None)
        return docs

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    async def insert_enrollment(self, enrollment: Enrollment) -> Enrollment:
        try:
            await self.db[ENROLLMENTS_COLLECTION].insert_one(enrollment.model_dump())
        except Exception as e:
            logger.error(f"Enrollment insert failed for {enrollment.id}: {e}")
            raise PersistenceError(str(e)) from e
        return enrollment

    async def get_enrollment(self, enrollment_id: str) -> Optional[Dict[str, Any]]:
        return await self.db[ENROLLMENTS_COLLECTION].find_one({"id": enrollment_id}, {"_id": 0})

    async def find_enrollments(
        self,
        email: str,
        pathway_name: Optional[str] = None,
        statuses: Iterable = OPEN_ENROLLMENT_STATUSES,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"email": email.lower(), "status": {"$in": _values(statuses)}}
        if pathway_name:
            query["pathway_name"] = pathway_name
        cursor = self.db[ENROLLMENTS_COLLECTION].find(query, {"_id": 0}).sort("created_at", 1)
        return await cursor.to_list(500)

    async def enrollments_for_lead(self, lead_id: str) -> List[Dict[str, Any]]:
        cursor = self.db[ENROLLMENTS_COLLECTION].find({"lead_id": lead_id}, {"_id": 0}).sort("created_at", 1)
        return await cursor.to_list(500)

    async def set_enrollment_status(
        self,
        enrollment_id: str,
        status: EnrollmentStatus,
        pause_reason: Optional[str] = None,
        from_statuses: Optional[Iterable] = None,
    ) -> bool:
        now = self.clock.now()
        query: Dict[str, Any] = {"id": enrollment_id}
        if from_statuses is not None:
            query["status"] = {"$in": _values(from_statuses)}
        update: Dict[str, Any] = {
            "status": getattr(status, "value", status),
            "pause_reason": pause_reason,
            "updated_at": now,
        }
        if status == EnrollmentStatus.COMPLETED:
            update["completed_at"] = now
        result = await self.db[ENROLLMENTS_COLLECTION].update_one(query, {"$set": update})
        return result.modified_count == 1

    async def complete_if_drained(self, enrollment_id: Optional[str]) -> bool:
        """Mark an active enrollment completed once nothing is left to send."""
        if not enrollment_id:
            return False
        remaining = await self.db[MESSAGES_COLLECTION].count_documents(
            {"enrollment_id": enrollment_id, "status": {"$in": list(UNSENT_MESSAGE_STATUSES)}}
        )
        if remaining:
            return False
        return await self.set_enrollment_status(
            enrollment_id, EnrollmentStatus.COMPLETED, from_statuses=[EnrollmentStatus.ACTIVE]
        )

    # ------------------------------------------------------------------
    # Scheduled messages
    # ------------------------------------------------------------------

    async def insert_messages(self, messages: List[ScheduledMessage]) -> None:
        if not messages:
            return
        try:
            await self.db[MESSAGES_COLLECTION].insert_many([m.model_dump() for m in messages])
        except Exception as e:
            logger.error(f"Scheduled message insert failed: {e}")
            raise PersistenceError(str(e)) from e

    async def get_message(self, message_id: str) -> Optional[Dict[str, Any]]:
        return await self.db[MESSAGES_COLLECTION].find_one({"id": message_id}, {"_id": 0})

    async def messages_for_enrollment(
        self,
        enrollment_id: str,
        statuses: Optional[Iterable] = None,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"enrollment_id": enrollment_id}
        if statuses is not None:
            query["status"] = {"$in": _values(statuses)}
        cursor = self.db[MESSAGES_COLLECTION].find(query, {"_id": 0}).sort([("step_index", 1), ("send_at", 1)])
        return await cursor.to_list(500)

    async def messages_for_email(self, email: str, statuses: Optional[Iterable] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"email": email.lower()}
        if statuses is not None:
            query["status"] = {"$in": _values(statuses)}
        cursor = self.db[MESSAGES_COLLECTION].find(query, {"_id": 0}).sort("send_at", 1)
        return await cursor.to_list(1000)

    async def set_messages_status(
        self,
        enrollment_ids: List[str],
        from_statuses: Iterable,
        to_status: MessageStatus,
    ) -> int:
        if not enrollment_ids:
            return 0
        result = await self.db[MESSAGES_COLLECTION].update_many(
            {"enrollment_id": {"$in": enrollment_ids}, "status": {"$in": _values(from_statuses)}},
            {"$set": {"status": getattr(to_status, "value", to_status), "updated_at": self.clock.now()}},
        )
        return result.modified_count

    async def reschedule_message(self, message_id: str, send_at: datetime, status: MessageStatus) -> None:
        await self.db[MESSAGES_COLLECTION].update_one(
            {"id": message_id},
            {"$set": {"send_at": send_at, "status": status.value, "updated_at": self.clock.now()}},
        )

    async def due_messages(self, now: datetime, limit: int) -> List[Dict[str, Any]]:
        cursor = (
            self.db[MESSAGES_COLLECTION]
            .find({"status": MessageStatus.PENDING.value, "send_at": {"$lte": now}}, {"_id": 0})
            .sort("send_at", 1)
            .limit(limit)
        )
        return await cursor.to_list(limit)

    async def mark_message_sent(self, message_id: str, provider: Optional[str]) -> bool:
        """Atomic unsent -> sent transition. False if someone else already moved it."""
        now = self.clock.now()
        result = await self.db[MESSAGES_COLLECTION].update_one(
            {"id": message_id, "status": {"$in": list(UNSENT_MESSAGE_STATUSES)}},
            {
                "$set": {
                    "status": MessageStatus.SENT.value,
                    "sent_at": now,
                    "provider": provider,
                    "last_error": None,
                    "updated_at": now,
                },
                "$inc": {"attempts": 1},
            },
        )
        return result.modified_count == 1

    async def record_message_failure(
        self,
        message_id: str,
        error: str,
        retry_at: Optional[datetime],
    ) -> bool:
        """Count a failed attempt. retry_at=None means give up and mark failed."""
        now = self.clock.now()
        update: Dict[str, Any] = {"last_error": error[:1000], "updated_at": now}
        if retry_at is None:
            update["status"] = MessageStatus.FAILED.value
        else:
            update["send_at"] = retry_at
        result = await self.db[MESSAGES_COLLECTION].update_one(
            {"id": message_id, "status": {"$in": list(UNSENT_MESSAGE_STATUSES)}},
            {"$set": update, "$inc": {"attempts": 1}},
        )
        return result.modified_count == 1

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    async def insert_booking(self, booking: Booking) -> Booking:
        await self.db[BOOKINGS_COLLECTION].insert_one(booking.model_dump())
        return booking

    async def find_booking_by_event_key(self, event_key: str) -> Optional[Dict[str, Any]]:
        return await self.db[BOOKINGS_COLLECTION].find_one({"event_key": event_key}, {"_id": 0})

    async def find_bookings(
        self,
        email: str,
        statuses: Iterable = (BookingStatus.SCHEDULED,),
        kind: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"email": email.lower(), "status": {"$in": _values(statuses)}}
        if kind:
            query["kind"] = kind
        cursor = self.db[BOOKINGS_COLLECTION].find(query, {"_id": 0}).sort("created_at", -1)
        return await cursor.to_list(100)

    async def set_booking_status(self, booking_id: str, status: BookingStatus) -> None:
        await self.db[BOOKINGS_COLLECTION].update_one(
            {"id": booking_id},
            {"$set": {"status": status.value, "updated_at": self.clock.now()}},
        )

    # ------------------------------------------------------------------
    # Counters (health / dashboard)
    # ------------------------------------------------------------------

    async def count_leads(self, since: Optional[datetime] = None, min_score: Optional[int] = None) -> int:
        query: Dict[str, Any] = {}
        if since is not None:
            query["created_at"] = {"$gte": since}
        if min_score is not None:
            query["score"] = {"$gte": min_score}
        return await self.db[LEADS_COLLECTION].count_documents(query)

    async def status_counts(self, collection: str) -> Dict[str, int]:
        pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        rows = await self.db[collection].aggregate(pipeline).to_list(50)
        return {row["_id"]: row["count"] for row in rows}


# Shared instance (one lock registry per process)
lead_store = LeadStore()
