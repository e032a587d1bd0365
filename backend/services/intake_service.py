"""
Intake Service

Orchestrates one form submission:
1. normalize and validate the form
2. score and profile it
3. persist the lead and its form_submitted interaction
4. select a pathway and enroll the lead
5. fan out best-effort side effects (internal alert, client confirmation,
   CRM lead, ESP subscriber with tags) with bounded concurrency
6. build the client response

Only steps 3 and 4 can fail the request. Side effects record their own
outcome as interactions; any still running at the deadline keep running in
the background and record their outcome when they finish.
"""
import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Set

import config
from models import InteractionKind, Lead, Priority, ResourceVariant, SubmissionKind, new_id
from services.client_profile import detect_profile
from services.clio_integration import clio_integration
from services.email_templates import (
    CLIENT_SUBJECTS,
    SERVICE_NAMES,
    build_inputs,
    internal_alert_subject,
    render,
    render_internal_alert,
    tailored_cta,
)
from services.enrollment_service import enrollment_service
from services.errors import ExternalServiceError, ValidationError
from services.kit_integration import kit_integration
from services.kit_tagging import build_tags
from services.lead_scoring import score_submission
from services.lead_store import lead_store
from services.mail_dispatcher import Attachment, OutgoingMail, mail_dispatcher
from services.pathway_catalog import get_pathway
from services.pathway_selector import select_pathway
from utils import form_fields as ff

logger = logging.getLogger(__name__)

# Advisory only; shown to the client next to the confirmation
PRICE_HINTS = {
    SubmissionKind.ESTATE: (
        ("package_preference", "trust", "Trust-based estate plans typically start at $3,500"),
        ("package_preference", "will", "Will-based estate plans typically start at $1,500"),
    ),
    SubmissionKind.BUSINESS_FORMATION: (
        ("selected_package", "gold", "Gold formation package: $4,500"),
        ("selected_package", "silver", "Silver formation package: $2,500"),
        ("selected_package", "bronze", "Bronze formation package: $1,200"),
    ),
    SubmissionKind.BRAND_PROTECTION: (
        ("service_preference", "7500", "Comprehensive brand portfolio: $7,500"),
        ("service_preference", "portfolio", "Comprehensive brand portfolio: $7,500"),
        ("service_preference", "clearance", "Trademark clearance search: $750"),
        ("service_preference", "", "Single trademark application from $1,500 per class"),
    ),
    SubmissionKind.OUTSIDE_COUNSEL: (
        ("budget", "10k+", "Fractional general counsel retainers from $10,000 per month"),
        ("budget", "5k-10k", "Outside counsel retainers from $5,000 per month"),
        ("budget", "", "Project-based outside counsel engagements quoted per matter"),
    ),
}

_background_tasks: Set[asyncio.Task] = set()


def price_hint(kind: SubmissionKind, form: Dict[str, Any]) -> Optional[str]:
    for field_name, needle, hint in PRICE_HINTS.get(SubmissionKind(kind), ()):
        value = ff.text(form, field_name).lower()
        if needle == "" or needle in value:
            return hint
    return None


def estimated_value(score: int) -> str:
    if score > 80:
        return "Very High"
    if score > 60:
        return "High"
    return "Medium"


class IntakeService:
    def __init__(self, store=None, enroller=None, mailer=None, crm=None, esp=None):
        self.store = store or lead_store
        self.enroller = enroller or enrollment_service
        self.mailer = mailer or mail_dispatcher
        self.crm = crm or clio_integration
        self.esp = esp or kit_integration

    @property
    def clock(self):
        return self.store.clock

    async def submit(
        self,
        kind: SubmissionKind,
        raw_form: Dict[str, Any],
        variant: Optional[ResourceVariant] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> Dict[str, Any]:
        kind = SubmissionKind(kind)
        form = ff.normalize(raw_form)
        email = ff.email(form)
        if not email or "@" not in email:
            raise ValidationError("email is required")
        if kind == SubmissionKind.RESOURCE_GUIDE:
            variant = ResourceVariant(variant or ResourceVariant.GENERAL)

        scored = score_submission(form, kind)
        profile = detect_profile(form, kind)

        now = self.clock.now()
        lead = Lead(
            id=new_id("LEAD", now),
            email=email,
            first_name=ff.first_name(form),
            last_name=ff.last_name(form),
            phone=ff.phone(form) or None,
            business_name=ff.business_name(form) or None,
            submission_kind=kind,
            resource_variant=variant,
            score=scored.score,
            priority=scored.priority,
            score_factors=scored.factors,
            profile=profile,
            form_data=dict(raw_form),
            created_at=now,
            updated_at=now,
        )
        await self.store.insert_lead(lead)
        await self.store.append_interaction(
            lead.id,
            InteractionKind.FORM_SUBMITTED,
            {"kind": kind.value, "score": scored.score, "priority": scored.priority.value},
        )

        pathway_name = select_pathway(scored.score, kind, profile, variant)
        enrollment = await self.enroller.enroll(
            lead, get_pathway(pathway_name), scored.score, trigger=f"intake:{kind.value}"
        )

        scheduling_link, _ = tailored_cta(scored.score, kind)
        side_effects = await self._fanout(lead, scheduling_link, attachments or [])

        logger.info(
            f"Intake {lead.id} kind={kind.value} score={scored.score} "
            f"priority={scored.priority.value} pathway={pathway_name}"
        )

        response: Dict[str, Any] = {
            "ok": True,
            "success": True,
            "submission_id": lead.id,
            "score": scored.score,
            "leadScore": scored.score,
            "priority": scored.priority.value,
            "profile": lead.profile,
            "pathway": pathway_name,
            "enrollment_id": enrollment.id,
            "scheduling_link": scheduling_link,
            "side_effects": side_effects,
        }
        hint = price_hint(kind, form)
        if hint:
            response["price_hint"] = hint
        if kind == SubmissionKind.GAMING_LEGAL:
            critical = scored.priority == Priority.CRITICAL
            response["message"] = (
                f"Gaming legal consultation request received with {scored.priority.value.upper()} priority status"
            )
            response["nextSteps"] = {
                "responseTime": "Within 2 hours" if critical else "Within 24 hours",
                "schedulingLink": config.CALENDLY_LINKS["gaming"],
                "emergencyContact": "Immediate consultation available" if critical else None,
            }
            response["practiceArea"] = SERVICE_NAMES[kind]
            response["estimatedValue"] = estimated_value(scored.score)
        return response

    # ------------------------------------------------------------------
    # Fanout
    # ------------------------------------------------------------------

    async def _fanout(self, lead: Lead, scheduling_link: str, attachments: List[Attachment]) -> Dict[str, str]:
        lead_doc = lead.model_dump()
        jobs: Dict[str, Awaitable] = {
            "internal_alert": self._send_internal_alert(lead_doc, scheduling_link, attachments),
            "client_confirmation": self._send_client_confirmation(lead_doc),
        }
        if self.crm.configured:
            jobs["crm"] = self._create_crm_lead(lead_doc, scheduling_link)
        if self.esp.configured:
            jobs["esp"] = self._tag_subscriber(lead_doc)

        outcome_kinds = {
            "internal_alert": (InteractionKind.INTERNAL_ALERT_SENT, InteractionKind.INTERNAL_ALERT_FAILED),
            "client_confirmation": (InteractionKind.CLIENT_CONFIRMATION_SENT, InteractionKind.CLIENT_CONFIRMATION_FAILED),
            "crm": (InteractionKind.CRM_CREATED, InteractionKind.CRM_FAILED),
            "esp": (InteractionKind.ESP_TAGGED, InteractionKind.ESP_FAILED),
        }

        semaphore = asyncio.Semaphore(config.INTAKE_FANOUT_CONCURRENCY)
        tasks = {
            name: asyncio.create_task(self._run_side_effect(lead.id, name, job, semaphore, *outcome_kinds[name]))
            for name, job in jobs.items()
        }
        done, pending = await asyncio.wait(tasks.values(), timeout=config.INTAKE_DEADLINE_SECONDS)

        for task in pending:
            _background_tasks.add(task)
            task.add_done_callback(_background_tasks.discard)
        if pending:
            logger.warning(f"Intake {lead.id}: {len(pending)} side effects still running at deadline")

        return {name: (task.result() if task in done else "pending") for name, task in tasks.items()}

    async def _run_side_effect(
        self,
        lead_id: str,
        name: str,
        job: Awaitable,
        semaphore: asyncio.Semaphore,
        ok_kind: InteractionKind,
        failed_kind: InteractionKind,
    ) -> str:
        async with semaphore:
            try:
                detail = await asyncio.wait_for(job, timeout=config.EXTERNAL_CALL_TIMEOUT_SECONDS * 2)
            except Exception as e:
                error = str(e) or e.__class__.__name__
                logger.warning(f"Intake {lead_id}: {name} failed: {error}")
                await self.store.append_interaction(lead_id, failed_kind, {"error": error[:500]})
                return "failed"
        await self.store.append_interaction(lead_id, ok_kind, detail or {})
        return "ok"

    async def _send_internal_alert(
        self,
        lead: Dict[str, Any],
        scheduling_link: str,
        attachments: List[Attachment],
    ) -> Dict[str, Any]:
        recipients = list(config.INTAKE_NOTIFY_TO)
        if lead["score"] >= config.HIGH_VALUE_ALERT_SCORE:
            recipients += [r for r in config.HIGH_VALUE_NOTIFY_TO if r not in recipients]
        if not recipients:
            raise ExternalServiceError("internal_alert", "no internal recipients configured")

        mail = OutgoingMail(
            to=recipients,
            subject=internal_alert_subject(lead),
            html=render_internal_alert(lead, scheduling_link, [(a.filename, a.size) for a in attachments]),
            reply_to=lead["email"],
            attachments=attachments,
            tag="internal_alert",
        )
        result = await self.mailer.send(mail)
        return {"provider": result.provider, "recipients": len(recipients), "attachments": len(attachments)}

    async def _send_client_confirmation(self, lead: Dict[str, Any]) -> Dict[str, Any]:
        kind = SubmissionKind(lead["submission_kind"])
        inputs = build_inputs(lead.get("first_name"), kind=kind, score=lead["score"])
        mail = OutgoingMail(
            to=[lead["email"]],
            subject=CLIENT_SUBJECTS[kind],
            html=render("client_confirmation", inputs),
            tag="client_confirmation",
        )
        result = await self.mailer.send(mail)
        return {"provider": result.provider}

    async def _create_crm_lead(self, lead: Dict[str, Any], scheduling_link: str) -> Dict[str, Any]:
        ok, error = await self.crm.create_lead(lead, scheduling_link)
        if not ok:
            raise ExternalServiceError("crm", error or "unknown error")
        return {"crm": "clio_grow"}

    async def _tag_subscriber(self, lead: Dict[str, Any]) -> Dict[str, Any]:
        tags = build_tags(
            lead.get("form_data") or {},
            lead["submission_kind"],
            lead["score"],
            lead["priority"],
            lead["profile"],
        )
        ok, error = await self.esp.add_subscriber(
            lead["email"],
            first_name=lead.get("first_name") or None,
            tags=tags,
            fields={"lead_score": str(lead["score"]), "priority": lead["priority"]},
        )
        if not ok:
            raise ExternalServiceError("esp", error or "unknown error")
        return {"tags": len(tags)}


intake_service = IntakeService()
