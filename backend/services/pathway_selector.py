"""Pure pathway selection over the catalog."""
from typing import Optional

from models import BookingKind, ClientProfile, ResourceVariant, SubmissionKind
from services.pathway_catalog import CATALOG

VIP_SCORE = 70
PREMIUM_SCORE = 50

PROFILE_VIP = {
    ClientProfile.ATHLETE: "athlete-vip",
    ClientProfile.CREATOR: "creator-vip",
    ClientProfile.STARTUP: "startup-vip",
    ClientProfile.FAMILY: "family-vip",
}
GENERIC_VIP = "vip-strategy"
PREMIUM_NURTURE = "premium-nurture"
STANDARD_NURTURE = "standard-nurture"


def intake_pathway_name(kind: SubmissionKind, variant: Optional[ResourceVariant] = None) -> str:
    kind = SubmissionKind(kind)
    if kind == SubmissionKind.RESOURCE_GUIDE:
        variant = ResourceVariant(variant or ResourceVariant.GENERAL)
        if variant == ResourceVariant.GENERAL:
            return "intake-resource-guide"
        return f"intake-{variant.value}-guide"
    return f"intake-{kind.slug}"


def select_pathway(
    score: int,
    kind: SubmissionKind,
    profile: ClientProfile,
    variant: Optional[ResourceVariant] = None,
    catalog=CATALOG,
) -> str:
    profile = ClientProfile(profile)
    if score >= VIP_SCORE:
        if profile in PROFILE_VIP:
            return PROFILE_VIP[profile]
        return GENERIC_VIP
    if score >= PREMIUM_SCORE:
        return PREMIUM_NURTURE
    kind_specific = intake_pathway_name(kind, variant)
    if kind_specific in catalog:
        return kind_specific
    return STANDARD_NURTURE


def post_consultation_pathway(kind: BookingKind) -> str:
    return f"post-consultation-{BookingKind(kind).value}"
