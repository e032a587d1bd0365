"""
Enrollment: message scheduling from the catalog, supersession, operator cancel.
"""
from datetime import timedelta

import pytest

from models import InteractionKind, Lead, SubmissionKind
from services.enrollment_service import EnrollmentService
from services.errors import PersistenceError
from services.pathway_catalog import get_pathway
from utils.clock import as_utc


def make_lead(clock, email="a@co.com", score=100, lead_id="LEAD-1"):
    now = clock.now()
    return Lead(
        id=lead_id,
        email=email,
        first_name="Ada",
        submission_kind=SubmissionKind.BUSINESS_FORMATION,
        score=score,
        profile="startup",
        created_at=now,
        updated_at=now,
    )


@pytest.mark.asyncio
async def test_enroll_schedules_one_message_per_step(store, clock):
    service = EnrollmentService(store)
    lead = make_lead(clock)
    await store.insert_lead(lead)
    pathway = get_pathway("startup-vip")

    enrollment = await service.enroll(lead, pathway, score=100, trigger="intake:business_formation")

    messages = await store.messages_for_enrollment(enrollment.id)
    assert len(messages) == len(pathway)
    assert [m["step_index"] for m in messages] == list(range(len(pathway)))
    assert all(m["status"] == "pending" for m in messages)

    start = clock.now()
    assert as_utc(messages[0]["send_at"]) == start
    for message, step in zip(messages[1:], pathway.steps[1:]):
        expected = start + timedelta(milliseconds=round(step.delay_ms * 0.75))
        assert as_utc(message["send_at"]) == expected

    interactions = await store.list_interactions(lead.id)
    assert interactions[-1]["kind"] == InteractionKind.ENROLLMENT_CREATED.value
    assert interactions[-1]["detail"]["steps"] == len(pathway)


@pytest.mark.asyncio
async def test_low_score_stretches_delays(store, clock):
    service = EnrollmentService(store)
    lead = make_lead(clock, score=20)
    enrollment = await service.enroll(lead, get_pathway("standard-nurture"))

    messages = await store.messages_for_enrollment(enrollment.id)
    assert as_utc(messages[1]["send_at"]) - clock.now() == timedelta(milliseconds=207_360_000)


@pytest.mark.asyncio
async def test_second_enrollment_supersedes_first(store, clock):
    service = EnrollmentService(store)
    lead = make_lead(clock)
    pathway = get_pathway("startup-vip")

    first = await service.enroll(lead, pathway)
    clock.advance(minutes=10)
    second_lead = make_lead(clock, lead_id="LEAD-2")
    second = await service.enroll(second_lead, pathway)

    assert (await store.get_enrollment(first.id))["status"] == "cancelled"
    first_messages = await store.messages_for_enrollment(first.id)
    assert {m["status"] for m in first_messages} == {"cancelled"}

    open_enrollments = await store.find_enrollments("a@co.com", pathway_name="startup-vip")
    assert [e["id"] for e in open_enrollments] == [second.id]
    assert open_enrollments[0]["status"] == "active"

    cancelled = [i for i in await store.list_interactions("LEAD-1") if i["kind"] == "enrollment_cancelled"]
    assert cancelled and cancelled[0]["detail"]["reason"] == "superseded"


@pytest.mark.asyncio
async def test_different_pathways_do_not_supersede(store, clock):
    service = EnrollmentService(store)
    lead = make_lead(clock)
    await service.enroll(lead, get_pathway("startup-vip"))
    await service.enroll(lead, get_pathway("intake-business-formation"))

    open_enrollments = await store.find_enrollments("a@co.com")
    assert len(open_enrollments) == 2


@pytest.mark.asyncio
async def test_enroll_by_name_unknown_pathway(store, clock):
    service = EnrollmentService(store)
    with pytest.raises(KeyError):
        await service.enroll_by_name(make_lead(clock), "no-such-pathway")


@pytest.mark.asyncio
async def test_message_insert_failure_cancels_enrollment(store, clock, monkeypatch):
    service = EnrollmentService(store)

    async def broken_insert(messages):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "insert_messages", broken_insert)
    with pytest.raises(PersistenceError):
        await service.enroll(make_lead(clock), get_pathway("startup-vip"))

    assert await store.find_enrollments("a@co.com") == []


@pytest.mark.asyncio
async def test_cancel_enrollment_cancels_unsent_messages(store, clock):
    service = EnrollmentService(store)
    lead = make_lead(clock)
    enrollment = await service.enroll(lead, get_pathway("standard-nurture"))

    result = await service.cancel_enrollment(enrollment.id, "client asked")
    assert result == {"enrollment_id": enrollment.id, "cancelled_messages": 3}
    assert (await store.get_enrollment(enrollment.id))["status"] == "cancelled"

    # Already closed
    assert await service.cancel_enrollment(enrollment.id) is None
    assert await service.cancel_enrollment("ENR-missing") is None
