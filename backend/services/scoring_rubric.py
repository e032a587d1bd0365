"""
Lead scoring rubric.

Pure data: base points per submission kind, per-kind rule lists and the
universal rules applied to every submission. The engine in lead_scoring.py
walks these tables in order; editing weights never touches the engine.

Rule shapes:
- Rule: one condition, fixed points.
- FirstOf: ordered alternatives, only the first matching one scores.
- Ladder: numeric field, first threshold strictly exceeded scores.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from models import SubmissionKind


@dataclass(frozen=True)
class When:
    """A condition on one form field.

    ops: eq, contains, icontains, flag, present, gt, longer_than, includes,
    free_mail (value False means "not free mail"), any, all, athlete.
    """
    field: str = ""
    op: str = "eq"
    value: Any = None


def ANY(*conds: When) -> When:
    return When(op="any", value=conds)


def ALL(*conds: When) -> When:
    return When(op="all", value=conds)


ATHLETE = When(op="athlete")


@dataclass(frozen=True)
class Rule:
    label: str
    points: int
    when: When


@dataclass(frozen=True)
class FirstOf:
    rules: Tuple[Rule, ...]


@dataclass(frozen=True)
class Ladder:
    field: str
    steps: Tuple[Tuple[float, int, str], ...]  # (threshold, points, label), highest first


Entry = Union[Rule, FirstOf, Ladder]


@dataclass(frozen=True)
class BaseOverride:
    """Kinds whose starting score comes from the form rather than the base table."""
    label: str
    field: str
    mode: str  # "verbatim" | "inverted_risk"


BASE_SCORES: Dict[SubmissionKind, int] = {
    SubmissionKind.ESTATE: 45,
    SubmissionKind.BUSINESS_FORMATION: 55,
    SubmissionKind.BRAND_PROTECTION: 40,
    SubmissionKind.OUTSIDE_COUNSEL: 50,
    SubmissionKind.LEGAL_STRATEGY: 35,
    SubmissionKind.LEGAL_RISK_ASSESSMENT: 40,
    SubmissionKind.RESOURCE_GUIDE: 25,
    SubmissionKind.NEWSLETTER: 20,
    SubmissionKind.GAMING_LEGAL: 40,
    SubmissionKind.SUBSCRIBER: 20,
}
DEFAULT_BASE_SCORE = 30

BASE_OVERRIDES: Dict[SubmissionKind, BaseOverride] = {
    SubmissionKind.LEGAL_STRATEGY: BaseOverride("Frontend assessment score", "assessment_score", "verbatim"),
    SubmissionKind.LEGAL_RISK_ASSESSMENT: BaseOverride("Risk assessment score", "overall_risk_score", "inverted_risk"),
}

KIND_RULES: Dict[SubmissionKind, Tuple[Entry, ...]] = {
    SubmissionKind.ESTATE: (
        Ladder("gross_estate", (
            (10_000_000, 60, "Ultra high net worth (>$10M)"),
            (5_000_000, 50, "High net worth (>$5M)"),
            (2_000_000, 35, "Significant assets (>$2M)"),
            (1_000_000, 25, "Substantial assets (>$1M)"),
            (500_000, 15, "Moderate assets (>$500K)"),
        )),
        Rule("Trust preference", 35, When("package_preference", "icontains", "trust")),
        Rule("Business owner", 25, When("own_business", "eq", "Yes")),
        Rule("Multiple properties", 20, When("other_real_estate", "eq", "Yes")),
        Rule("Complex situation", 30, When("planning_goal", "eq", "complex")),
        Rule("Professional athlete", 40, ATHLETE),
        Rule("Brand partnerships", 20, ALL(ATHLETE, When("brand_partnerships", "flag"))),
    ),
    SubmissionKind.BUSINESS_FORMATION: (
        FirstOf((
            Rule("VC-backed startup", 70, When("investment_plan", "eq", "vc")),
            Rule("Angel funding", 50, When("investment_plan", "eq", "angel")),
        )),
        FirstOf((
            Rule("High revenue projection", 60, When("projected_revenue", "contains", "over25m")),
            Rule("Significant revenue", 45, When("projected_revenue", "contains", "5m-25m")),
        )),
        Rule("High-growth startup", 25, When("business_goal", "eq", "startup")),
        Rule("Premium package", 30, When("selected_package", "eq", "gold")),
    ),
    SubmissionKind.BRAND_PROTECTION: (
        Rule("Comprehensive portfolio", 50, ANY(
            When("service_preference", "contains", "Portfolio"),
            When("service_preference", "contains", "7500"),
        )),
        Rule("Established business", 25, When("business_stage", "eq", "Mature (5+ years)")),
        Rule("Enforcement need", 40, When("protection_goal", "eq", "enforcement")),
        Ladder("social_following", (
            (2_000_000, 60, "Major creator (2M+ followers)"),
            (1_000_000, 50, "Large creator (1M+ followers)"),
            (500_000, 30, "Mid-tier creator (500K+ followers)"),
        )),
        Ladder("business_revenue", (
            (2_000_000, 50, "High revenue creator ($2M+)"),
            (1_000_000, 40, "Successful creator ($1M+)"),
            (500_000, 25, "Monetizing creator ($500K+)"),
        )),
        Rule("Creator business model", 20, ANY(
            When("business_type", "eq", "creator"),
            When("revenue_streams", "includes", "brand_partnerships"),
        )),
    ),
    SubmissionKind.OUTSIDE_COUNSEL: (
        FirstOf((
            Rule("High budget (>$10K)", 50, When("budget", "contains", "10K+")),
            Rule("Substantial budget", 30, When("budget", "contains", "5K-10K")),
        )),
        Rule("Immediate need", 35, When("timeline", "eq", "Immediately")),
    ),
    SubmissionKind.LEGAL_RISK_ASSESSMENT: (
        FirstOf((
            Rule("High risk priority", 30, When("overall_risk_score", "gt", 20)),
            Rule("Medium risk", 15, When("overall_risk_score", "gt", 12)),
        )),
    ),
    SubmissionKind.LEGAL_STRATEGY: (
        Rule("Strategy Builder conversion", 25, ANY(
            When("from_assessment", "eq", "true"),
            When("source", "eq", "legal-strategy-builder-conversion"),
        )),
    ),
    SubmissionKind.GAMING_LEGAL: (
        Rule("Real-money gaming", 15, When("has_real_money", "flag")),
        Rule("Skill-based gaming", 20, When("is_skill_based", "flag")),
        Rule("Live or scaling product", 10, ANY(
            When("current_stage", "eq", "live"),
            When("current_stage", "eq", "scaling"),
        )),
        Rule("Immediate urgency", 15, When("urgency_level", "eq", "immediate")),
        Rule("Monthly revenue over $100K", 10, ANY(
            When("monthly_revenue", "eq", "100k-500k"),
            When("monthly_revenue", "eq", "500k+"),
        )),
        Rule("Detailed challenges", 5, When("specific_challenges", "longer_than", 50)),
        Rule("Compliance analysis", 5, When("legal_services", "includes", "compliance-analysis")),
        Rule("Legal opinions", 10, When("legal_services", "includes", "legal-opinions")),
        Rule("Regulatory defense", 15, When("legal_services", "includes", "regulatory-defense")),
    ),
}

UNIVERSAL_RULES: Tuple[Entry, ...] = (
    Rule("Urgent timeline", 45, ANY(
        When("urgency", "contains", "Immediate"),
        When("urgency", "contains", "urgent"),
    )),
    Rule("Business email", 15, ALL(When("email", "present"), When("email", "free_mail", False))),
    Rule("Phone provided", 10, When("phone", "present")),
    Rule("Business name provided", 10, ANY(
        When("business_name", "present"),
        When("company_name", "present"),
    )),
)

# Priority bands (inclusive lower bounds), checked top-down.
PRIORITY_BANDS: Tuple[Tuple[int, str], ...] = (
    (70, "high"),
    (50, "medium"),
    (0, "standard"),
)
CRITICAL_SCORE = 90
CRITICAL_TRIGGERS: Tuple[When, ...] = (
    When("urgency_level", "eq", "immediate"),
)
CRITICAL_KINDS: Tuple[SubmissionKind, ...] = (SubmissionKind.GAMING_LEGAL,)


def rules_for(kind: SubmissionKind) -> Tuple[Entry, ...]:
    return KIND_RULES.get(kind, ())


def base_for(kind: SubmissionKind) -> Tuple[int, Optional[BaseOverride]]:
    return BASE_SCORES.get(kind, DEFAULT_BASE_SCORE), BASE_OVERRIDES.get(kind)
