"""
Lead scoring: rubric weights, clamping, factor order and priority bands.
"""
import pytest

from models import ClientProfile, Priority, SubmissionKind
from services.client_profile import detect_profile
from services.lead_scoring import priority_for, score_submission


def test_estate_score_is_deterministic_and_ordered():
    form = {
        "gross_estate": "12,500,000",
        "package_preference": "Trust Package",
        "own_business": "Yes",
        "urgency": "Immediate",
    }
    first = score_submission(form, SubmissionKind.ESTATE)
    second = score_submission(dict(form), SubmissionKind.ESTATE)

    assert first.score == 100
    assert first.factors == second.factors
    assert len(first.factors) == 5
    assert first.factors[0] == "Base estate: +45"
    assert first.factors[1] == "Ultra high net worth (>$10M): +60"
    assert first.factors[2] == "Trust preference: +35"
    assert first.factors[3] == "Business owner: +25"
    assert first.factors[4] == "Urgent timeline: +45"
    assert first.priority == Priority.HIGH


def test_vc_startup_clamps_to_100():
    form = {
        "email": "a@co.com",
        "investment_plan": "vc",
        "projected_revenue": "over25m",
        "selected_package": "gold",
        "phone": "555",
        "business_name": "X",
    }
    result = score_submission(form, SubmissionKind.BUSINESS_FORMATION)
    assert result.score == 100
    assert result.priority == Priority.HIGH
    assert "VC-backed startup: +70" in result.factors
    assert "High revenue projection: +60" in result.factors
    assert "Business email: +15" in result.factors


def test_first_of_only_scores_first_match():
    form = {"projected_revenue": "5m-25m", "budget": "10K+"}
    result = score_submission(form, SubmissionKind.BUSINESS_FORMATION)
    assert result.score == 55 + 45
    assert result.factors == ["Base business-formation: +55", "Significant revenue: +45"]

    counsel = score_submission({"budget": "10K+ (5K-10K ok)"}, SubmissionKind.OUTSIDE_COUNSEL)
    assert counsel.factors == ["Base outside-counsel: +50", "High budget (>$10K): +50"]


def test_free_mail_earns_no_business_email_points():
    result = score_submission({"email": "someone@gmail.com"}, SubmissionKind.NEWSLETTER)
    assert result.score == 20
    assert result.priority == Priority.STANDARD


def test_camel_case_fields_are_read():
    result = score_submission({"grossEstate": "2,500,000"}, SubmissionKind.ESTATE)
    assert result.score == 45 + 35


def test_legal_strategy_base_comes_from_assessment_score():
    result = score_submission({"assessment_score": "62", "from_assessment": "true"}, SubmissionKind.LEGAL_STRATEGY)
    assert result.factors[0] == "Frontend assessment score: +62"
    assert result.score == 87


def test_risk_assessment_base_is_inverted():
    low_risk = score_submission({"overall_risk_score": "5"}, SubmissionKind.LEGAL_RISK_ASSESSMENT)
    high_risk = score_submission({"overall_risk_score": "25"}, SubmissionKind.LEGAL_RISK_ASSESSMENT)
    assert low_risk.score == 90
    assert high_risk.score == 50 + 30


@pytest.mark.parametrize("score,expected", [
    (0, Priority.STANDARD),
    (49, Priority.STANDARD),
    (50, Priority.MEDIUM),
    (69, Priority.MEDIUM),
    (70, Priority.HIGH),
    (100, Priority.HIGH),
])
def test_priority_bands(score, expected):
    assert priority_for(score, SubmissionKind.ESTATE, {}) == expected


def test_gaming_high_score_is_critical():
    form = {
        "has_real_money": "yes",
        "is_skill_based": True,
        "current_stage": "live",
        "urgency_level": "immediate",
        "monthly_revenue": "500k+",
        "legal_services": ["regulatory-defense", "legal-opinions"],
        "phone": "555-0100",
    }
    result = score_submission(form, SubmissionKind.GAMING_LEGAL)
    assert result.score == 100
    assert result.priority == Priority.CRITICAL


def test_immediate_urgency_level_makes_any_kind_critical():
    assert priority_for(95, SubmissionKind.BRAND_PROTECTION, {"urgency_level": "immediate"}) == Priority.CRITICAL
    assert priority_for(89, SubmissionKind.GAMING_LEGAL, {}) == Priority.HIGH


def test_score_never_negative_or_above_100():
    for kind in SubmissionKind:
        result = score_submission({}, kind)
        assert 0 <= result.score <= 100


# ============================================================================
# Profile detection
# ============================================================================

def test_athlete_wins_over_everything():
    form = {"profession": "Professional Athlete", "social_following": "5000000"}
    assert detect_profile(form, SubmissionKind.BRAND_PROTECTION) == ClientProfile.ATHLETE


def test_creator_by_following_or_revenue_stream():
    assert detect_profile({"social_following": "250000"}, SubmissionKind.BRAND_PROTECTION) == ClientProfile.CREATOR
    assert detect_profile({"revenue_streams": "ads, brand_partnerships"}, SubmissionKind.NEWSLETTER) == ClientProfile.CREATOR


def test_startup_only_for_business_formation():
    form = {"investment_plan": "vc", "business_name": "X"}
    assert detect_profile(form, SubmissionKind.BUSINESS_FORMATION) == ClientProfile.STARTUP
    assert detect_profile(form, SubmissionKind.OUTSIDE_COUNSEL) == ClientProfile.BUSINESS_OWNER


def test_family_for_large_estates():
    assert detect_profile({"gross_estate": "1,500,000"}, SubmissionKind.ESTATE) == ClientProfile.FAMILY
    assert detect_profile({"gross_estate": "900000"}, SubmissionKind.ESTATE) == ClientProfile.GENERIC
