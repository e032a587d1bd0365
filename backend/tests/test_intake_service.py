"""
Intake coordinator: persist, score, enroll, fan out side effects, respond.
"""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

import config
from models import SubmissionKind
from services.enrollment_service import EnrollmentService
from services.errors import MailSendFailed, TransientDeliveryError, ValidationError
from services.intake_service import IntakeService, estimated_value, price_hint
from services.mail_dispatcher import Attachment, DeliveryResult
from services.pathway_catalog import get_pathway
from utils.clock import as_utc

VC_STARTUP = {
    "email": "a@co.com",
    "investment_plan": "vc",
    "projected_revenue": "over25m",
    "selected_package": "gold",
    "phone": "555",
    "business_name": "X",
}


def make_service(store, crm_configured=True, esp_configured=True):
    mailer = MagicMock()
    mailer.send = AsyncMock(return_value=DeliveryResult(provider="sendgrid", message_id="m-1"))
    crm = MagicMock()
    crm.configured = crm_configured
    crm.create_lead = AsyncMock(return_value=(True, None))
    esp = MagicMock()
    esp.configured = esp_configured
    esp.add_subscriber = AsyncMock(return_value=(True, None))
    service = IntakeService(store, EnrollmentService(store), mailer, crm, esp)
    return service, mailer, crm, esp


@pytest.mark.asyncio
async def test_vc_startup_submission(store, clock):
    service, mailer, crm, esp = make_service(store)

    response = await service.submit(SubmissionKind.BUSINESS_FORMATION, dict(VC_STARTUP))

    assert response["ok"] is True and response["success"] is True
    assert response["score"] == 100
    assert response["leadScore"] == 100
    assert response["priority"] == "high"
    assert response["profile"] == "startup"
    assert response["pathway"] == "startup-vip"
    assert response["side_effects"] == {
        "internal_alert": "ok",
        "client_confirmation": "ok",
        "crm": "ok",
        "esp": "ok",
    }
    assert response["price_hint"] == "Gold formation package: $4,500"

    lead = await store.get_lead(response["submission_id"])
    assert lead["email"] == "a@co.com"
    assert lead["form_data"] == VC_STARTUP
    assert len(lead["score_factors"]) == 7

    pathway = get_pathway("startup-vip")
    messages = await store.messages_for_enrollment(response["enrollment_id"])
    assert len(messages) == len(pathway)
    now = clock.now()
    assert as_utc(messages[0]["send_at"]) == now
    for message, step in zip(messages[1:], pathway.steps[1:]):
        assert as_utc(message["send_at"]) == now + timedelta(milliseconds=round(step.delay_ms * 0.75))

    assert mailer.send.await_count == 2
    alert = mailer.send.await_args_list[0].args[0]
    assert alert.reply_to == "a@co.com"
    assert "(Score: 100)" in alert.subject

    tags = esp.add_subscriber.await_args.kwargs["tags"]
    assert "startup-founder" in tags
    assert "platinum-prospect" in tags

    kinds = [i["kind"] for i in await store.list_interactions(response["submission_id"])]
    assert kinds[0] == "form_submitted"
    for expected in ("enrollment_created", "internal_alert_sent", "client_confirmation_sent", "crm_created", "esp_tagged"):
        assert expected in kinds


@pytest.mark.asyncio
async def test_resubmission_supersedes_previous_enrollment(store, clock):
    service, *_ = make_service(store)
    first = await service.submit(SubmissionKind.BUSINESS_FORMATION, dict(VC_STARTUP))
    clock.advance(minutes=10)
    second = await service.submit(SubmissionKind.BUSINESS_FORMATION, dict(VC_STARTUP))

    assert (await store.get_enrollment(first["enrollment_id"]))["status"] == "cancelled"
    old_messages = await store.messages_for_enrollment(first["enrollment_id"])
    assert {m["status"] for m in old_messages} == {"cancelled"}
    active = await store.find_enrollments("a@co.com", statuses=["active"])
    assert [e["id"] for e in active] == [second["enrollment_id"]]


@pytest.mark.asyncio
async def test_side_effect_failures_never_fail_intake(store, clock):
    service, mailer, crm, esp = make_service(store)
    mailer.send = AsyncMock(side_effect=MailSendFailed(TransientDeliveryError("all down")))
    crm.create_lead = AsyncMock(return_value=(False, "Clio Grow error 500"))
    esp.add_subscriber = AsyncMock(side_effect=RuntimeError("kit exploded"))

    response = await service.submit(SubmissionKind.ESTATE, {"email": "jane@example.com", "first_name": "Jane"})

    assert response["ok"] is True
    assert set(response["side_effects"].values()) == {"failed"}
    kinds = [i["kind"] for i in await store.list_interactions(response["submission_id"])]
    for expected in ("internal_alert_failed", "client_confirmation_failed", "crm_failed", "esp_failed"):
        assert expected in kinds
    assert await store.find_enrollments("jane@example.com")


@pytest.mark.asyncio
async def test_unconfigured_integrations_are_skipped(store, clock):
    service, _, crm, esp = make_service(store, crm_configured=False, esp_configured=False)
    response = await service.submit(SubmissionKind.NEWSLETTER, {"email": "reader@gmail.com"})

    assert set(response["side_effects"]) == {"internal_alert", "client_confirmation"}
    crm.create_lead.assert_not_called()
    esp.add_subscriber.assert_not_called()
    assert response["pathway"] == "intake-newsletter"


@pytest.mark.asyncio
@pytest.mark.parametrize("form", [{}, {"email": ""}, {"email": "not-an-email"}])
async def test_missing_email_is_rejected_before_persisting(store, clock, form):
    service, mailer, *_ = make_service(store)
    with pytest.raises(ValidationError):
        await service.submit(SubmissionKind.ESTATE, form)
    assert await store.count_leads() == 0
    mailer.send.assert_not_called()


@pytest.mark.asyncio
async def test_gaming_response_fields(store, clock):
    service, *_ = make_service(store)
    form = {
        "email": "ceo@studio.gg",
        "has_real_money": "yes",
        "is_skill_based": "yes",
        "current_stage": "scaling",
        "urgency_level": "immediate",
        "legal_services": ["regulatory-defense"],
        "phone": "555-0199",
    }
    response = await service.submit(SubmissionKind.GAMING_LEGAL, form)

    assert response["priority"] == "critical"
    assert response["nextSteps"]["responseTime"] == "Within 2 hours"
    assert response["nextSteps"]["emergencyContact"] == "Immediate consultation available"
    assert response["estimatedValue"] == "Very High"
    assert response["practiceArea"] == "Gaming & Interactive Entertainment Legal"


@pytest.mark.asyncio
async def test_resource_guide_variant_selects_guide_pathway(store, clock):
    service, *_ = make_service(store)
    response = await service.submit(
        SubmissionKind.RESOURCE_GUIDE, {"email": "reader@gmail.com"}, variant="estate"
    )
    assert response["pathway"] == "intake-estate-guide"
    lead = await store.get_lead(response["submission_id"])
    assert lead["resource_variant"] == "estate"


@pytest.mark.asyncio
async def test_attachments_go_to_internal_alert_only(store, clock):
    service, mailer, *_ = make_service(store)
    files = [Attachment("will.pdf", b"%PDF-1.4 test", "application/pdf")]
    response = await service.submit(SubmissionKind.ESTATE, {"email": "jane@example.com"}, attachments=files)

    alert, confirmation = [call.args[0] for call in mailer.send.await_args_list]
    assert alert.attachments == files
    assert confirmation.attachments == []
    assert "will.pdf" in alert.html
    lead = await store.get_lead(response["submission_id"])
    assert "attachments" not in lead["form_data"]


@pytest.mark.asyncio
async def test_slow_side_effect_finishes_in_background(store, clock, monkeypatch):
    monkeypatch.setattr(config, "INTAKE_DEADLINE_SECONDS", 0.05)
    service, _, crm, _ = make_service(store)

    async def slow_create(lead, link):
        await asyncio.sleep(0.2)
        return True, None

    crm.create_lead = slow_create
    response = await service.submit(SubmissionKind.ESTATE, {"email": "jane@example.com"})
    assert response["side_effects"]["crm"] == "pending"

    await asyncio.sleep(0.4)
    kinds = [i["kind"] for i in await store.list_interactions(response["submission_id"])]
    assert "crm_created" in kinds


def test_price_hints_and_estimated_value():
    assert price_hint(SubmissionKind.ESTATE, {"package_preference": "Trust Package"}).startswith("Trust-based")
    assert price_hint(SubmissionKind.NEWSLETTER, {}) is None
    assert price_hint(SubmissionKind.BRAND_PROTECTION, {}) == "Single trademark application from $1,500 per class"
    assert estimated_value(81) == "Very High"
    assert estimated_value(61) == "High"
    assert estimated_value(60) == "Medium"
