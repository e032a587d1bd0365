"""
Pathway catalog integrity, pathway selection and the score-adjusted delay law.
"""
import pytest

from models import BookingKind, ClientProfile, ResourceVariant, SubmissionKind
from services.email_templates import known_templates
from services.enrollment_service import adjusted_delay_ms, delay_factor
from services.pathway_catalog import CATALOG, DAY, HOUR, get_pathway, validate_catalog
from services.pathway_selector import (
    intake_pathway_name,
    post_consultation_pathway,
    select_pathway,
)


def test_catalog_steps_are_ordered_and_use_known_templates():
    templates = set(known_templates())
    for pathway in CATALOG.values():
        assert len(pathway) > 0
        delays = [step.delay_ms for step in pathway.steps]
        assert delays == sorted(delays), pathway.name
        assert delays[0] == 0, pathway.name
        for step in pathway.steps:
            assert step.body_template_id in templates


def test_validate_catalog_rejects_unknown_template():
    with pytest.raises(ValueError):
        validate_catalog(known_templates={"vip_welcome"})


def test_every_booking_kind_has_a_post_consultation_pathway():
    for kind in BookingKind:
        assert post_consultation_pathway(kind) in CATALOG


def test_vip_profiles_get_profile_journeys():
    assert select_pathway(100, SubmissionKind.BUSINESS_FORMATION, ClientProfile.STARTUP) == "startup-vip"
    assert select_pathway(70, SubmissionKind.ESTATE, ClientProfile.FAMILY) == "family-vip"
    assert select_pathway(85, SubmissionKind.BRAND_PROTECTION, ClientProfile.CREATOR) == "creator-vip"
    assert select_pathway(75, SubmissionKind.ESTATE, ClientProfile.ATHLETE) == "athlete-vip"


def test_vip_without_profile_journey_gets_generic_vip():
    assert select_pathway(90, SubmissionKind.OUTSIDE_COUNSEL, ClientProfile.BUSINESS_OWNER) == "vip-strategy"
    assert select_pathway(90, SubmissionKind.NEWSLETTER, ClientProfile.GENERIC) == "vip-strategy"


def test_middle_band_gets_premium_nurture():
    assert select_pathway(50, SubmissionKind.ESTATE, ClientProfile.ATHLETE) == "premium-nurture"
    assert select_pathway(69, SubmissionKind.NEWSLETTER, ClientProfile.GENERIC) == "premium-nurture"


def test_low_scores_get_kind_specific_journey_when_one_exists():
    assert select_pathway(45, SubmissionKind.ESTATE, ClientProfile.GENERIC) == "intake-estate"
    assert select_pathway(20, SubmissionKind.NEWSLETTER, ClientProfile.GENERIC) == "intake-newsletter"
    assert select_pathway(
        25, SubmissionKind.RESOURCE_GUIDE, ClientProfile.GENERIC, ResourceVariant.BRAND
    ) == "intake-brand-guide"
    assert select_pathway(25, SubmissionKind.RESOURCE_GUIDE, ClientProfile.GENERIC) == "intake-resource-guide"


def test_low_scores_fall_back_to_standard_nurture():
    assert select_pathway(40, SubmissionKind.GAMING_LEGAL, ClientProfile.GENERIC) == "standard-nurture"
    assert select_pathway(10, SubmissionKind.ESTATE, ClientProfile.GENERIC, catalog={}) == "standard-nurture"


def test_intake_pathway_names():
    assert intake_pathway_name(SubmissionKind.BUSINESS_FORMATION) == "intake-business-formation"
    assert intake_pathway_name(SubmissionKind.RESOURCE_GUIDE, ResourceVariant.ESTATE) == "intake-estate-guide"
    assert intake_pathway_name(SubmissionKind.RESOURCE_GUIDE) == "intake-resource-guide"


@pytest.mark.parametrize("score,factor", [
    (100, 0.75),
    (90, 0.75),
    (89, 0.85),
    (70, 0.85),
    (69, 1.0),
    (50, 1.0),
    (49, 1.2),
    (0, 1.2),
])
def test_delay_factor_bands(score, factor):
    assert delay_factor(score) == factor


def test_adjusted_delay_rounds_and_keeps_zero():
    assert adjusted_delay_ms(0, 100) == 0
    assert adjusted_delay_ms(0, 10) == 0
    assert adjusted_delay_ms(DAY, 95) == 64_800_000
    assert adjusted_delay_ms(4 * HOUR, 75) == 12_240_000
    assert adjusted_delay_ms(DAY, 20) == 103_680_000
    # half-up rounding
    assert adjusted_delay_ms(3, 90) == 2
    assert adjusted_delay_ms(1, 75) == 1


def test_get_pathway_unknown_is_none():
    assert get_pathway("no-such-pathway") is None
    assert get_pathway("startup-vip").steps[0].delay_ms == 0
