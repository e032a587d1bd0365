"""
Enrollment Service

Creates drip enrollments and their scheduled messages. Step delays from the
catalog are scaled by lead score; a new enrollment for the same
(email, pathway) supersedes the open one.
"""
import logging
import math
from datetime import timedelta
from typing import Any, Dict, List, Optional

from models import (
    ClientProfile,
    Enrollment,
    EnrollmentStatus,
    InteractionKind,
    Lead,
    MessageStatus,
    ScheduledMessage,
    new_id,
)
from services.errors import PersistenceError
from services.lead_store import OPEN_ENROLLMENT_STATUSES, UNSENT_MESSAGE_STATUSES, lead_store
from services.pathway_catalog import Pathway, get_pathway

logger = logging.getLogger(__name__)

# (minimum score, delay factor), checked top-down
DELAY_FACTORS = (
    (90, 0.75),
    (70, 0.85),
    (50, 1.00),
    (0, 1.20),
)


def delay_factor(score: int) -> float:
    return next(factor for floor, factor in DELAY_FACTORS if score >= floor)


def adjusted_delay_ms(nominal_ms: int, score: int) -> int:
    """Score-scaled delay, rounded half-up to whole milliseconds. Zero stays zero."""
    if nominal_ms <= 0:
        return 0
    return int(math.floor(nominal_ms * delay_factor(score) + 0.5))


class EnrollmentService:
    def __init__(self, store=None):
        self.store = store or lead_store

    @property
    def clock(self):
        return self.store.clock

    async def enroll(
        self,
        lead: Lead,
        pathway: Pathway,
        score: Optional[int] = None,
        trigger: str = "manual",
    ) -> Enrollment:
        """Enroll a lead in a pathway and schedule one message per step."""
        score = lead.score if score is None else score
        email = lead.email.lower()

        async with self.store.email_lock(email):
            await self._supersede(email, pathway.name)

            now = self.clock.now()
            enrollment = Enrollment(
                id=new_id("ENR", now),
                lead_id=lead.id,
                email=email,
                pathway_name=pathway.name,
                trigger=trigger,
                score=score,
                profile=lead.profile or ClientProfile.GENERIC,
                created_at=now,
                updated_at=now,
            )
            messages = [
                ScheduledMessage(
                    id=new_id("MSG", now),
                    enrollment_id=enrollment.id,
                    lead_id=lead.id,
                    email=email,
                    first_name=lead.first_name or None,
                    step_index=index,
                    subject_template=step.subject_template,
                    body_template_id=step.body_template_id,
                    send_at=now + timedelta(milliseconds=adjusted_delay_ms(step.delay_ms, score)),
                    created_at=now,
                    updated_at=now,
                )
                for index, step in enumerate(pathway.steps)
            ]

            await self.store.insert_enrollment(enrollment)
            try:
                await self.store.insert_messages(messages)
            except PersistenceError:
                await self.store.set_enrollment_status(enrollment.id, EnrollmentStatus.CANCELLED)
                raise

        await self.store.append_interaction(
            lead.id,
            InteractionKind.ENROLLMENT_CREATED,
            {
                "enrollment_id": enrollment.id,
                "pathway": pathway.name,
                "trigger": trigger,
                "steps": len(messages),
            },
        )
        logger.info(f"Enrolled {lead.id} in {pathway.name} ({len(messages)} messages, score {score})")
        return enrollment

    async def enroll_by_name(self, lead: Lead, pathway_name: str, trigger: str = "manual") -> Enrollment:
        pathway = get_pathway(pathway_name)
        if pathway is None:
            raise KeyError(f"Unknown pathway: {pathway_name}")
        return await self.enroll(lead, pathway, trigger=trigger)

    async def _supersede(self, email: str, pathway_name: str) -> List[str]:
        """Cancel open enrollments for (email, pathway). Caller holds the email lock."""
        open_enrollments = await self.store.find_enrollments(email, pathway_name, OPEN_ENROLLMENT_STATUSES)
        cancelled = []
        for prior in open_enrollments:
            changed = await self.store.set_enrollment_status(
                prior["id"], EnrollmentStatus.CANCELLED, from_statuses=OPEN_ENROLLMENT_STATUSES
            )
            if not changed:
                continue
            count = await self.store.set_messages_status(
                [prior["id"]], UNSENT_MESSAGE_STATUSES, MessageStatus.CANCELLED
            )
            await self.store.append_interaction(
                prior["lead_id"],
                InteractionKind.ENROLLMENT_CANCELLED,
                {"enrollment_id": prior["id"], "pathway": pathway_name, "reason": "superseded", "messages": count},
            )
            logger.info(f"Superseded enrollment {prior['id']} ({pathway_name}), {count} messages cancelled")
            cancelled.append(prior["id"])
        return cancelled

    async def cancel_enrollment(self, enrollment_id: str, reason: str = "cancelled by operator") -> Optional[Dict[str, Any]]:
        """Cancel one open enrollment and its unsent messages. None if it was not open."""
        enrollment = await self.store.get_enrollment(enrollment_id)
        if not enrollment:
            return None

        async with self.store.email_lock(enrollment["email"]):
            changed = await self.store.set_enrollment_status(
                enrollment_id, EnrollmentStatus.CANCELLED, from_statuses=OPEN_ENROLLMENT_STATUSES
            )
            if not changed:
                return None
            count = await self.store.set_messages_status(
                [enrollment_id], UNSENT_MESSAGE_STATUSES, MessageStatus.CANCELLED
            )

        await self.store.append_interaction(
            enrollment["lead_id"],
            InteractionKind.ENROLLMENT_CANCELLED,
            {"enrollment_id": enrollment_id, "reason": reason, "messages": count},
        )
        logger.info(f"Enrollment {enrollment_id} cancelled: {reason}")
        return {"enrollment_id": enrollment_id, "cancelled_messages": count}


enrollment_service = EnrollmentService()
