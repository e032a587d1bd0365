"""Client profile detection. First matching rule wins."""
from typing import Any, Dict

from models import ClientProfile, SubmissionKind
from utils import form_fields as ff

CREATOR_FOLLOWING = 100_000
CREATOR_REVENUE = 500_000
FAMILY_ESTATE = 1_000_000


def detect_profile(form: Dict[str, Any], kind: SubmissionKind) -> ClientProfile:
    if ff.is_athlete(form):
        return ClientProfile.ATHLETE

    if (
        ff.number(form, "social_following") > CREATOR_FOLLOWING
        or ff.number(form, "business_revenue") > CREATOR_REVENUE
        or ff.text(form, "business_type") == "creator"
        or "brand_partnerships" in ff.items(form, "revenue_streams")
    ):
        return ClientProfile.CREATOR

    if kind == SubmissionKind.BUSINESS_FORMATION and (
        ff.text(form, "investment_plan") in ("vc", "angel")
        or ff.text(form, "business_goal") == "startup"
    ):
        return ClientProfile.STARTUP

    if kind == SubmissionKind.ESTATE and ff.number(form, "gross_estate") > FAMILY_ESTATE:
        return ClientProfile.FAMILY

    if ff.text(form, "own_business") == "Yes" or ff.business_name(form):
        return ClientProfile.BUSINESS_OWNER

    return ClientProfile.GENERIC
