"""
Drip pathway catalog.

Each pathway is an ordered list of steps; a step's delay is measured from the
moment of enrollment (not from the previous step) and is nominal, the enroller
scales it by lead score. Adding or editing a pathway is a data change only.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from services.email_templates import known_templates

MINUTE = 60 * 1000
HOUR = 60 * MINUTE
DAY = 24 * HOUR


@dataclass(frozen=True)
class Step:
    delay_ms: int
    subject_template: str
    body_template_id: str


@dataclass(frozen=True)
class Pathway:
    name: str
    title: str
    steps: Tuple[Step, ...]

    def __len__(self) -> int:
        return len(self.steps)


def _p(name: str, title: str, *steps: Tuple[int, str, str]) -> Pathway:
    return Pathway(name=name, title=title, steps=tuple(Step(*s) for s in steps))


PATHWAYS: Tuple[Pathway, ...] = (
    # Profile VIP journeys (score >= 70 with a recognised profile)
    _p("athlete-vip", "VIP Athlete Journey",
       (0, "Your Athletic Career Legal Strategy - {{firstName}}", "vip_welcome"),
       (1 * DAY, "Protecting Athletic Career Value", "athlete_email_2"),
       (3 * DAY, "Building Your Athletic Legacy", "athlete_email_3"),
       (7 * DAY, "Secure Your Championship Legacy - {{firstName}}", "consultation_reminder")),
    _p("creator-vip", "VIP Creator Journey",
       (0, "Protect Your Creator Business - {{firstName}}", "vip_welcome"),
       (1 * DAY, "Your Content Has Real Business Value", "creator_email_2"),
       (3 * DAY, "Scale Your Creator Business Strategically", "creator_email_3"),
       (7 * DAY, "Bulletproof Your Creator Empire - {{firstName}}", "consultation_reminder")),
    _p("startup-vip", "VIP Startup Journey",
       (0, "Legal Foundation for Scaling - {{firstName}}", "vip_welcome"),
       (1 * DAY, "Legal Foundation = Investment Readiness", "startup_email_2"),
       (3 * DAY, "From Startup to Scalable Company", "startup_email_3"),
       (7 * DAY, "Make Your Startup Investor-Ready - {{firstName}}", "consultation_reminder")),
    _p("family-vip", "VIP Family Wealth Journey",
       (0, "Multi-Generational Planning - {{firstName}}", "vip_welcome"),
       (1 * DAY, "Generational Wealth Architecture", "family_email_2"),
       (3 * DAY, "Family Legacy Strategy", "family_email_3"),
       (7 * DAY, "Build Your Legacy Architecture - {{firstName}}", "consultation_reminder")),

    # Score-band journeys
    _p("vip-strategy", "VIP Legal Strategy Journey",
       (0, "Welcome to Jacobs Counsel - {{firstName}}", "vip_welcome"),
       (4 * HOUR, "Preparing for Your Legal Consultation", "vip_strategy"),
       (1 * DAY, "Educational Resources for Your Review", "legal_education_general"),
       (3 * DAY, "Schedule Your Consultation - {{firstName}}", "consultation_reminder")),
    _p("premium-nurture", "Premium Legal Education Journey",
       (0, "Welcome to Jacobs Counsel - {{firstName}}", "premium_welcome"),
       (1 * DAY, "Understanding Legal Strategy Basics", "legal_education_general"),
       (3 * DAY, "Educational Resources for Your Review", "legal_resources"),
       (7 * DAY, "Schedule Your Consultation - {{firstName}}", "consultation_reminder")),
    _p("standard-nurture", "General Legal Education Series",
       (0, "Thank You for Your Interest - {{firstName}}", "standard_welcome"),
       (2 * DAY, "Understanding Legal Strategy Basics", "legal_education_general"),
       (7 * DAY, "Schedule Your Consultation - {{firstName}}", "consultation_reminder")),

    # Kind-specific intake journeys
    _p("intake-estate", "Estate Planning Intake Journey",
       (0, "Estate Planning Intake Received - {{firstName}}", "estate_intake_confirmation"),
       (1 * DAY, "Understanding Estate Planning Basics", "estate_planning_education"),
       (3 * DAY, "Schedule Your Estate Planning Consultation", "estate_consultation_reminder")),
    _p("intake-business-formation", "Business Formation Intake Journey",
       (0, "Business Formation Inquiry Received - {{firstName}}", "business_intake_confirmation"),
       (1 * DAY, "Business Formation Considerations", "business_formation_education"),
       (3 * DAY, "Schedule Your Business Formation Consultation", "business_consultation_reminder")),
    _p("intake-brand-protection", "Brand Protection Intake Journey",
       (0, "Brand Protection Inquiry Received - {{firstName}}", "brand_intake_confirmation"),
       (1 * DAY, "Understanding Brand Protection", "brand_protection_education"),
       (3 * DAY, "Schedule Your Brand Protection Consultation", "brand_consultation_reminder")),
    _p("intake-legal-strategy", "Legal Strategy Builder Journey",
       (0, "Your Strategic Legal Assessment Results - {{firstName}}", "legal_strategy_builder_welcome"),
       (1 * DAY, "Strategic Legal Implementation: Next Steps", "legal_strategy_builder_followup"),
       (3 * DAY, "Schedule Your Strategy Session - {{firstName}}", "consultation_reminder")),
    _p("intake-newsletter", "Strategic Legal Insights",
       (0, "Welcome to Strategic Legal Insights - {{firstName}}", "newsletter_welcome"),
       (7 * DAY, "Strategic Legal Planning Fundamentals", "legal_education_general"),
       (14 * DAY, "Schedule a Strategic Consultation - {{firstName}}", "consultation_reminder")),
    _p("intake-outside-counsel", "Outside Counsel Journey",
       (0, "Outside Counsel Inquiry Received - {{firstName}}", "outside_counsel_welcome"),
       (1 * DAY, "Strategic Legal Counsel Framework", "legal_education_general"),
       (3 * DAY, "Schedule Your Outside Counsel Discussion", "consultation_reminder")),
    _p("intake-resource-guide", "Resource Guide Journey",
       (0, "Your Strategic Legal Resource Guide - {{firstName}}", "resource_guide_welcome"),
       (3 * DAY, "Implementing Strategic Legal Resources", "legal_education_general"),
       (7 * DAY, "Schedule Implementation Discussion - {{firstName}}", "consultation_reminder")),
    _p("intake-business-guide", "Business Guide Journey",
       (0, "Your Business Legal Planning Guide - {{firstName}}", "business_guide_welcome"),
       (1 * DAY, "Advanced Business Legal Strategy", "business_formation_education"),
       (3 * DAY, "Schedule Your Business Strategy Discussion", "consultation_reminder")),
    _p("intake-brand-guide", "Brand Guide Journey",
       (0, "Your Brand Protection Strategy Guide - {{firstName}}", "brand_guide_welcome"),
       (1 * DAY, "Advanced Brand Protection Strategies", "brand_protection_education"),
       (3 * DAY, "Schedule Your Brand Strategy Discussion", "consultation_reminder")),
    _p("intake-estate-guide", "Estate Guide Journey",
       (0, "Your Estate Planning Strategy Guide - {{firstName}}", "estate_guide_welcome"),
       (1 * DAY, "Advanced Estate Planning Strategies", "estate_planning_education"),
       (3 * DAY, "Schedule Your Estate Strategy Consultation", "consultation_reminder")),
    _p("intake-subscriber", "Subscriber Welcome",
       (0, "Welcome to Jacobs Counsel - {{firstName}}", "standard_welcome"),
       (2 * DAY, "Understanding Strategic Legal Planning", "legal_education_general"),
       (7 * DAY, "Schedule Your Legal Strategy Consultation", "consultation_reminder")),

    # After a consultation took place
    _p("post-consultation-general", "Post-Consultation Follow-up",
       (0, "Thank You for Your Consultation - {{firstName}}", "post_consultation_thank_you"),
       (7 * DAY, "Strategic Legal Planning: Your Next Steps", "strategic_follow_up"),
       (21 * DAY, "Legal Updates and Strategic Opportunities", "lead_reengagement")),
    _p("post-consultation-estate", "Post-Consultation Estate Follow-up",
       (0, "Thank You for Your Estate Planning Consultation", "post_consultation_thank_you"),
       (5 * DAY, "Estate Planning Implementation: Next Steps", "strategic_follow_up"),
       (14 * DAY, "Strategic Estate Planning Updates", "lead_reengagement")),
    _p("post-consultation-business", "Post-Consultation Business Follow-up",
       (0, "Thank You for Your Business Strategy Consultation", "post_consultation_thank_you"),
       (3 * DAY, "Business Legal Strategy: Next Steps", "strategic_follow_up"),
       (10 * DAY, "Business Legal Updates and Opportunities", "lead_reengagement")),
    _p("post-consultation-brand", "Post-Consultation Brand Follow-up",
       (0, "Thank You for Your Brand Strategy Consultation", "post_consultation_thank_you"),
       (4 * DAY, "Brand Protection Strategy: Next Steps", "strategic_follow_up"),
       (12 * DAY, "Brand Protection Updates and Strategic Opportunities", "lead_reengagement")),
    _p("post-consultation-counsel", "Post-Consultation Counsel Follow-up",
       (0, "Thank You for Your Strategic Counsel Discussion", "post_consultation_thank_you"),
       (2 * DAY, "Outside Counsel Strategy: Next Steps", "strategic_follow_up"),
       (8 * DAY, "Strategic Legal Counsel Updates", "lead_reengagement")),
    _p("post-consultation-vip", "Post-Consultation VIP Follow-up",
       (0, "Thank You for Your VIP Strategic Consultation", "post_consultation_thank_you"),
       (1 * DAY, "VIP Strategic Implementation: Next Steps", "strategic_follow_up"),
       (7 * DAY, "Exclusive Strategic Legal Updates", "lead_reengagement")),

    # Re-engagement of quiet leads
    _p("lead-reengagement-30-day", "30-Day Re-engagement",
       (0, "Strategic Legal Updates - {{firstName}}", "lead_reengagement"),
       (14 * DAY, "New Legal Opportunities for Strategic Planning", "legal_education_general"),
       (28 * DAY, "Ready to Discuss Your Legal Strategy?", "consultation_reminder")),
    _p("lead-reengagement-90-day", "90-Day Re-engagement",
       (0, "Important Legal Updates - {{firstName}}", "lead_reengagement"),
       (21 * DAY, "Strategic Legal Planning Refresh", "consultation_reminder")),
)

CATALOG: Dict[str, Pathway] = {p.name: p for p in PATHWAYS}


def get_pathway(name: str) -> Optional[Pathway]:
    return CATALOG.get(name)


def validate_catalog(known_templates=None) -> None:
    """Raise ValueError if the catalog breaks its own shape rules."""
    if len(CATALOG) != len(PATHWAYS):
        raise ValueError("Duplicate pathway names in catalog")
    for pathway in PATHWAYS:
        if not pathway.steps:
            raise ValueError(f"Pathway {pathway.name} has no steps")
        previous = 0
        for step in pathway.steps:
            if step.delay_ms < previous:
                raise ValueError(f"Pathway {pathway.name} delays must be non-decreasing")
            previous = step.delay_ms
            if known_templates is not None and step.body_template_id not in known_templates:
                raise ValueError(f"Pathway {pathway.name} uses unknown template {step.body_template_id}")


validate_catalog(known_templates=set(known_templates()))
