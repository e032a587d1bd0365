"""Subscriber tags for the ESP, derived from the scored submission."""
from typing import Any, Dict, List

from models import ClientProfile, SubmissionKind
from utils import form_fields as ff

CORE_TAGS = ("jc-lead", "active-prospect")

# (minimum score, tags), checked top-down
SCORE_BAND_TAGS = (
    (90, ("platinum-prospect", "vip-treatment", "immediate-response")),
    (80, ("gold-prospect", "premium-lead", "high-conversion")),
    (70, ("silver-prospect", "qualified-lead", "good-fit")),
    (50, ("bronze-prospect", "standard-nurture", "developing")),
    (0, ("education-needed", "long-term-nurture", "awareness-stage")),
)

CONVERSION_TAGS = (
    (85, "high-conversion-probability"),
    (70, "medium-conversion-probability"),
    (0, "low-conversion-probability"),
)

PROFILE_TAGS = {
    ClientProfile.ATHLETE: ("athlete", "sports-professional", "endorsement-income", "career-transition-planning"),
    ClientProfile.CREATOR: ("creator", "digital-entrepreneur", "content-monetization", "brand-partnerships"),
    ClientProfile.STARTUP: ("startup-founder", "equity-planning", "investor-relations", "venture-capital"),
    ClientProfile.FAMILY: ("high-net-worth", "family-office-services", "generational-wealth"),
    ClientProfile.BUSINESS_OWNER: ("business-owner", "succession-planning", "asset-protection"),
}

PRACTICE_AREA_TAGS = {
    SubmissionKind.ESTATE: ("estate-planning", "wealth-transfer", "tax-planning"),
    SubmissionKind.BUSINESS_FORMATION: ("business-law", "entity-formation", "corporate-structure"),
    SubmissionKind.BRAND_PROTECTION: ("brand-law", "trademark-strategy", "ip-enforcement"),
    SubmissionKind.OUTSIDE_COUNSEL: ("general-counsel", "strategic-legal", "ongoing-support"),
    SubmissionKind.LEGAL_STRATEGY: ("strategy-builder", "comprehensive-planning", "multi-area"),
    SubmissionKind.LEGAL_RISK_ASSESSMENT: ("risk-assessment", "strategic-legal"),
    SubmissionKind.GAMING_LEGAL: ("gaming-law", "regulatory-compliance", "interactive-entertainment"),
}


def _band(score: int, bands):
    return next(value for floor, value in bands if score >= floor)


def urgency_tags(form: Dict[str, Any]) -> List[str]:
    timeline = ff.text(form, "timeline").lower()
    if "immediate" in timeline:
        return ["urgent", "immediate-need", "time-sensitive"]
    if "month" in timeline:
        return ["near-term", "quarterly-planning", "active-timeline"]
    return ["long-term-planning", "strategic-timing", "flexible-timeline"]


def build_tags(
    form: Dict[str, Any],
    kind: SubmissionKind,
    score: int,
    priority: str,
    profile: ClientProfile,
) -> List[str]:
    """Deduplicated, sorted tag list for one lead."""
    kind = SubmissionKind(kind)
    tags = list(CORE_TAGS)
    tags.append(f"source-{kind.slug}")
    tags.append(f"priority-{getattr(priority, 'value', priority) or 'standard'}")
    tags.extend(_band(score, SCORE_BAND_TAGS))
    tags.append(_band(score, CONVERSION_TAGS))
    tags.extend(PROFILE_TAGS.get(ClientProfile(profile), ()))
    tags.extend(PRACTICE_AREA_TAGS.get(kind, ()))
    tags.extend(urgency_tags(form))
    return sorted(set(tags))
