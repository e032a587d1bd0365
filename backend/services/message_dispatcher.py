"""
Scheduled message dispatcher.

One tick drains up to DISPATCH_BATCH_SIZE due messages, oldest first, and
processes them one at a time so that messages of an enrollment go out in
send_at order. A step is held back while an earlier step of its enrollment
is still pending, so a retried step keeps its place in the sequence. Each message is committed on its own: a crash mid-tick leaves
the remaining messages pending for the next tick.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import config
from models import InteractionKind, MessageStatus
from services.email_templates import build_inputs, render, render_subject
from services.errors import MailSendFailed
from services.lead_store import lead_store
from services.mail_dispatcher import OutgoingMail, mail_dispatcher

logger = logging.getLogger(__name__)

SENT = "sent"
RETRIED = "retried"
FAILED = "failed"
SKIPPED = "skipped"
DEFERRED = "deferred"


class MessageDispatcher:
    def __init__(
        self,
        store=None,
        mailer=None,
        batch_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[int] = None,
    ):
        self.store = store or lead_store
        self.mailer = mailer or mail_dispatcher
        self.batch_size = batch_size or config.DISPATCH_BATCH_SIZE
        self.max_attempts = max_attempts or config.DISPATCH_MAX_ATTEMPTS
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else config.DISPATCH_BACKOFF_SECONDS

    @property
    def clock(self):
        return self.store.clock

    async def run_tick(self) -> Dict[str, Any]:
        now = self.clock.now()
        due = await self.store.due_messages(now, self.batch_size)
        counts = {SENT: 0, RETRIED: 0, FAILED: 0, SKIPPED: 0, DEFERRED: 0}

        waiting = [message["id"] for message in due]
        while waiting:
            deferred = []
            for message_id in waiting:
                outcome = await self.dispatch_one(message_id)
                if outcome == DEFERRED:
                    deferred.append(message_id)
                else:
                    counts[outcome] += 1
            # Held steps get another pass once something ahead of them moved
            if len(deferred) == len(waiting):
                counts[DEFERRED] += len(deferred)
                break
            waiting = deferred

        if due:
            logger.info(
                f"Dispatch tick: {len(due)} due, {counts[SENT]} sent, "
                f"{counts[RETRIED]} retried, {counts[FAILED]} failed"
            )
        return {
            "message": f"Processed {len(due)} due messages",
            "count": len(due),
            **counts,
        }

    async def _render(self, message: Dict[str, Any]) -> Tuple[str, str]:
        lead = await self.store.get_lead(message["lead_id"]) if message.get("lead_id") else None
        lead = lead or {}
        first_name = message.get("first_name") or lead.get("first_name")
        inputs = build_inputs(
            first_name,
            kind=lead.get("submission_kind"),
            score=lead.get("score", 0),
            **(message.get("context") or {}),
        )
        subject = render_subject(message["subject_template"], {**inputs, "firstName": first_name or ""})
        return subject, render(message["body_template_id"], inputs)

    async def dispatch_one(self, message_id: str) -> str:
        # Re-read: a booking may have paused it since the batch was selected
        message = await self.store.get_message(message_id)
        if not message or message["status"] != MessageStatus.PENDING.value:
            return SKIPPED
        if await self._earlier_step_unsent(message):
            return DEFERRED

        try:
            subject, html_body = await self._render(message)
        except KeyError as e:
            error = f"unknown template {e}"
            await self.store.record_message_failure(message_id, error, None)
            await self._record_failure(message, error, attempts=message.get("attempts", 0) + 1)
            return FAILED

        mail = OutgoingMail(
            to=[message["email"]],
            subject=subject,
            html=html_body,
            tag=message["body_template_id"],
            metadata={"message_id": message_id, "lead_id": message.get("lead_id") or ""},
        )

        try:
            result = await self.mailer.send(mail)
        except MailSendFailed as e:
            return await self._handle_send_failure(message, e)

        if not await self.store.mark_message_sent(message_id, result.provider):
            logger.warning(f"Message {message_id} changed state during send; not marking sent")
            return SKIPPED

        await self.store.append_interaction(
            message.get("lead_id"),
            InteractionKind.EMAIL_SENT,
            {
                "message_id": message_id,
                "enrollment_id": message.get("enrollment_id"),
                "step": message.get("step_index"),
                "template": message["body_template_id"],
                "provider": result.provider,
            },
        )
        await self.store.touch_lead(message.get("lead_id"))
        await self.store.complete_if_drained(message.get("enrollment_id"))
        return SENT

    async def _earlier_step_unsent(self, message: Dict[str, Any]) -> bool:
        """True while an earlier step of the same enrollment is still waiting to go out."""
        if not message.get("enrollment_id"):
            return False
        pending = await self.store.messages_for_enrollment(message["enrollment_id"], [MessageStatus.PENDING])
        return any(m["step_index"] < message["step_index"] for m in pending)

    async def _handle_send_failure(self, message: Dict[str, Any], error: MailSendFailed) -> str:
        message_id = message["id"]
        attempts = message.get("attempts", 0) + 1

        if error.transient and attempts < self.max_attempts:
            retry_at = self.clock.now() + timedelta(seconds=self.backoff_seconds * attempts)
            await self.store.record_message_failure(message_id, str(error), retry_at)
            logger.warning(f"Message {message_id} attempt {attempts} failed, retrying at {retry_at.isoformat()}")
            return RETRIED

        await self.store.record_message_failure(message_id, str(error), None)
        await self._record_failure(message, str(error), attempts)
        return FAILED

    async def _record_failure(self, message: Dict[str, Any], error: str, attempts: int) -> None:
        logger.error(f"Message {message['id']} failed after {attempts} attempts: {error}")
        await self.store.append_interaction(
            message.get("lead_id"),
            InteractionKind.EMAIL_SEND_FAILED,
            {
                "message_id": message["id"],
                "enrollment_id": message.get("enrollment_id"),
                "template": message["body_template_id"],
                "attempts": attempts,
                "error": error[:500],
            },
        )
        await self.store.complete_if_drained(message.get("enrollment_id"))


message_dispatcher = MessageDispatcher()
