"""
Email Templates

Template bodies are markdown-ish text with a small set of substitution tokens:
{{firstName}}, {{ctaUrl}}, {{ctaText}}, {{serviceName}}, {{baseUrl}},
{{unsubscribeUrl}}, {{checklist}} and {{consultationTime}}. Rendering is a
pure function of its inputs; unknown tokens render as empty strings.
"""
import html
import re
from typing import Any, Dict, Iterable, Optional, Tuple

import config
from models import BookingKind, SubmissionKind

TOKEN_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")

SIGNATURE = """
Best regards,
**Drew Jacobs, Esq.**
Jacobs Counsel LLC
"""

FOOTER = """
---
This email is for informational purposes only and does not create an attorney-client relationship.
[Unsubscribe]({{unsubscribeUrl}})
"""

CTA = "[{{ctaText}}]({{ctaUrl}})"

SERVICE_NAMES = {
    SubmissionKind.ESTATE: "Estate Planning",
    SubmissionKind.BUSINESS_FORMATION: "Business Formation",
    SubmissionKind.BRAND_PROTECTION: "Brand Protection",
    SubmissionKind.OUTSIDE_COUNSEL: "Outside Counsel Services",
    SubmissionKind.LEGAL_STRATEGY: "Legal Strategy Builder",
    SubmissionKind.LEGAL_RISK_ASSESSMENT: "Legal Risk Assessment",
    SubmissionKind.NEWSLETTER: "Strategic Legal Insights",
    SubmissionKind.RESOURCE_GUIDE: "Legal Resource Guide",
    SubmissionKind.GAMING_LEGAL: "Gaming & Interactive Entertainment Legal",
    SubmissionKind.SUBSCRIBER: "Strategic Legal Insights",
}

CLIENT_SUBJECTS = {
    SubmissionKind.ESTATE: "Estate Planning Intake Received",
    SubmissionKind.BUSINESS_FORMATION: "Business Formation Inquiry Received",
    SubmissionKind.BRAND_PROTECTION: "Brand Protection Inquiry Received",
    SubmissionKind.OUTSIDE_COUNSEL: "Outside Counsel Inquiry Received",
    SubmissionKind.LEGAL_STRATEGY: "Your Legal Strategy Assessment",
    SubmissionKind.LEGAL_RISK_ASSESSMENT: "Your Legal Risk Assessment Results",
    SubmissionKind.NEWSLETTER: "Welcome to Strategic Legal Insights",
    SubmissionKind.RESOURCE_GUIDE: "Your Legal Resource Guide",
    SubmissionKind.GAMING_LEGAL: "Gaming Legal Consultation Request Received",
    SubmissionKind.SUBSCRIBER: "Welcome to Strategic Legal Insights",
}

# Calendly link key per submission kind; anything unlisted books a general consultation
CTA_LINK_KEYS = {
    SubmissionKind.ESTATE: "estate",
    SubmissionKind.BUSINESS_FORMATION: "business",
    SubmissionKind.BRAND_PROTECTION: "brand",
    SubmissionKind.OUTSIDE_COUNSEL: "counsel",
    SubmissionKind.GAMING_LEGAL: "gaming",
}

CONSULTATION_CHECKLISTS = {
    BookingKind.GENERAL: [
        "A short summary of your legal questions",
        "Your timeline and any deadlines",
    ],
    BookingKind.ESTATE: [
        "A list of major assets and approximate values",
        "Existing wills, trusts or beneficiary designations",
        "Names of family members you want to provide for",
    ],
    BookingKind.BUSINESS: [
        "Your business plan or a short description of the venture",
        "Ownership split and planned funding",
        "Any existing contracts or formation documents",
    ],
    BookingKind.BRAND: [
        "The names, logos and slogans you want to protect",
        "Where and since when you have used them",
        "Any conflicting marks you know about",
    ],
    BookingKind.COUNSEL: [
        "Current legal matters and open contracts",
        "Your monthly legal budget",
        "Who on your team will work with us",
    ],
    BookingKind.VIP: [
        "Your top three legal priorities",
        "Key advisors we should coordinate with",
        "Relevant documents across business, brand and wealth",
    ],
}


TEMPLATES: Dict[str, str] = {
    # ------------------------------------------------------------------
    # Welcome emails (first step of the score-band journeys)
    # ------------------------------------------------------------------
    "vip_welcome": """
Hi {{firstName}},

Thank you for reaching out about **{{serviceName}}**. Your situation deserves a coordinated legal strategy, not one-off paperwork.

**Our strategic consultation will address:**
- Comprehensive assessment of your position and objectives
- Integrated strategy across business, brand and wealth protection
- An implementation roadmap tailored to your situation

""" + CTA + """

We will identify your biggest legal risks and give you a clear plan for addressing them.
""",
    "premium_welcome": """
Hi {{firstName}},

Smart move getting your legal house in order. Your **{{serviceName}}** inquiry tells us you are thinking ahead.

Over the next few days you will receive short, practical insights about {{serviceName}} to help you think strategically about the road ahead.

""" + CTA + """
""",
    "standard_welcome": """
Hi {{firstName}},

Thank you for your interest in **{{serviceName}}**. Most people wait too long to put their legal foundation in place and then scramble when they need it most.

**During a consultation we can:**
- Discuss your legal needs and objectives
- Explain our services and approach
- Walk you through our fee structure

""" + CTA + """
""",
    "vip_strategy": """
Hi {{firstName}},

To make the most of your strategic consultation, please consider:
- Your primary legal concerns or objectives
- Specific questions you would like to discuss
- Your timeline for addressing these matters
- Relevant documents or background information

Until a formal engagement agreement is signed, our discussions are for informational purposes only.

""" + CTA + """
""",

    # ------------------------------------------------------------------
    # Profile VIP sequences
    # ------------------------------------------------------------------
    "athlete_email_2": """
Hi {{firstName}},

Athletic careers generate concentrated wealth in compressed timeframes. The right legal structures protect current earnings and set up post-career security.

**Key considerations for professional athletes:**
- Asset protection during peak earning years
- Contract optimization and brand partnerships
- Tax-efficient wealth preservation
- Post-career business and investment structure

""" + CTA + """
""",
    "athlete_email_3": """
Hi {{firstName}},

The decisions you make today about wealth structure shape your financial future long after your playing days end.

**Strategic wealth building for athletes includes:**
- Entity selection for endorsements and ventures
- Estate planning that grows with your career
- Family protection and generational planning

""" + CTA + """
""",
    "creator_email_2": """
Hi {{firstName}},

Every piece of content you create is intellectual property, and every brand partnership is a business transaction. Your audience and content library carry real business value.

**Protect what you have built:**
- Trademark your name, channel and product brands
- Review partnership and sponsorship contracts
- Separate personal and business liability

""" + CTA + """
""",
    "creator_email_3": """
Hi {{firstName}},

Scaling a creator business means building a media company. Structure, contracts and IP ownership decide how much of that value you keep.

""" + CTA + """
""",
    "startup_email_2": """
Hi {{firstName}},

Investors look for a clean legal foundation: correct entity, clear cap table, assigned IP and solid founder agreements.

**Investment readiness checklist:**
- Entity and jurisdiction choice
- Founder vesting and IP assignment
- Standard financing documents

""" + CTA + """
""",
    "startup_email_3": """
Hi {{firstName}},

Moving from startup to scalable company brings employment, equity and commercial contracts that need to be right the first time.

""" + CTA + """
""",
    "family_email_2": """
Hi {{firstName}},

Generational wealth needs architecture: trusts, governance and tax planning that work together.

**Areas we typically review:**
- Trust structures and beneficiary planning
- Family business succession
- Asset protection and tax efficiency

""" + CTA + """
""",
    "family_email_3": """
Hi {{firstName}},

A family legacy strategy aligns your estate plan with your values and keeps it current as your family and assets grow.

""" + CTA + """
""",

    # ------------------------------------------------------------------
    # Education and reminders
    # ------------------------------------------------------------------
    "legal_education_general": """
Hi {{firstName}},

Strategic legal planning is about preventing problems, not reacting to them. A short review today often avoids a costly dispute later.

You can find more articles and guides at [our resource library]({{baseUrl}}/resources).

""" + CTA + """
""",
    "legal_resources": """
Hi {{firstName}},

Here are educational resources selected for your review on **{{serviceName}}**. Browse them at [{{baseUrl}}/resources]({{baseUrl}}/resources).

""" + CTA + """
""",
    "consultation_reminder": """
Hi {{firstName}},

A quick reminder that a strategic consultation is the fastest way to turn your questions into a concrete plan.

""" + CTA + """
""",
    "estate_planning_education": """
Hi {{firstName}},

**Estate planning basics:**
- Wills direct who receives what
- Trusts can avoid probate and add privacy
- Powers of attorney and healthcare directives protect you while you are alive

""" + CTA + """
""",
    "business_formation_education": """
Hi {{firstName}},

**Business formation considerations:**
- LLC or corporation, and where to form it
- Operating agreement or bylaws that match how you work
- Ownership, vesting and IP assignment from day one

""" + CTA + """
""",
    "brand_protection_education": """
Hi {{firstName}},

**Brand protection essentials:**
- Clear your name before you invest in it
- Register the marks that matter most first
- Monitor and enforce so your rights stay strong

""" + CTA + """
""",

    # ------------------------------------------------------------------
    # Kind-specific intake journeys
    # ------------------------------------------------------------------
    "estate_intake_confirmation": """
Hi {{firstName}},

We received your estate planning intake. Our team is reviewing your information and will follow up with next steps.

""" + CTA + """
""",
    "estate_consultation_reminder": """
Hi {{firstName}},

Your estate plan is ready to move forward once we have talked it through. Pick a time that works for you.

""" + CTA + """
""",
    "business_intake_confirmation": """
Hi {{firstName}},

We received your business formation inquiry. We will review your goals and recommend the right structure.

""" + CTA + """
""",
    "business_consultation_reminder": """
Hi {{firstName}},

Ready to set up your business the right way? Book a business formation consultation.

""" + CTA + """
""",
    "brand_intake_confirmation": """
Hi {{firstName}},

We received your brand protection inquiry and will review the marks you want to protect.

""" + CTA + """
""",
    "brand_consultation_reminder": """
Hi {{firstName}},

Your brand is worth protecting before someone else files first. Book a brand protection consultation.

""" + CTA + """
""",
    "legal_strategy_builder_welcome": """
Hi {{firstName}},

Thank you for completing the Legal Strategy Builder. Your results highlight where a coordinated plan would have the most impact.

""" + CTA + """
""",
    "legal_strategy_builder_followup": """
Hi {{firstName}},

The next step is turning your assessment into an implementation plan with clear priorities and timelines.

""" + CTA + """
""",
    "newsletter_welcome": """
Hi {{firstName}},

Welcome to **Strategic Legal Insights**. Expect practical, concise legal strategy for business owners, creators and families.

""" + CTA + """
""",
    "outside_counsel_welcome": """
Hi {{firstName}},

We received your outside counsel inquiry. We work as an extension of your team for contracts, compliance and strategic matters.

""" + CTA + """
""",
    "resource_guide_welcome": """
Hi {{firstName}},

Your strategic legal resource guide is ready: [download it here]({{baseUrl}}/resources/legal-resource-guide).

""" + CTA + """
""",
    "business_guide_welcome": """
Hi {{firstName}},

Your business legal planning guide is ready: [download it here]({{baseUrl}}/resources/business-guide).

""" + CTA + """
""",
    "brand_guide_welcome": """
Hi {{firstName}},

Your brand protection strategy guide is ready: [download it here]({{baseUrl}}/resources/brand-guide).

""" + CTA + """
""",
    "estate_guide_welcome": """
Hi {{firstName}},

Your estate planning strategy guide is ready: [download it here]({{baseUrl}}/resources/estate-guide).

""" + CTA + """
""",

    # ------------------------------------------------------------------
    # Consultations and re-engagement
    # ------------------------------------------------------------------
    "consultation_confirmation": """
Hi {{firstName}},

Your **{{serviceName}}** consultation is confirmed for {{consultationTime}}.

**To prepare, please gather:**
{{checklist}}

If you need to reschedule, use the link in your calendar invitation.
""",
    "post_consultation_thank_you": """
Hi {{firstName}},

Thank you for meeting with us. We will send a written summary of the recommendations we discussed.

""" + CTA + """
""",
    "strategic_follow_up": """
Hi {{firstName}},

Checking in on the next steps from your consultation. When you are ready to move forward, we are here to help.

""" + CTA + """
""",
    "lead_reengagement": """
Hi {{firstName}},

It has been a while since we last connected. If your legal priorities have changed, we would be glad to help you plan the next step.

""" + CTA + """
""",
    "client_confirmation": """
Hi {{firstName}},

Thank you for your **{{serviceName}}** submission. We have received your information and a member of our team will follow up shortly.

""" + CTA + """
""",
}


def _text_value(value: Any) -> str:
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


def substitute(template: str, inputs: Dict[str, Any], raw: Iterable[str] = ()) -> str:
    """Replace {{token}} placeholders. Missing tokens become empty strings.

    Values are HTML-escaped unless their token is listed in raw.
    """
    raw = set(raw)

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        value = inputs.get(name)
        if value is None:
            return ""
        return str(value) if name in raw else _text_value(value)

    return TOKEN_RE.sub(_replace, template)


def markdown_to_html(text: str) -> str:
    """Simple markdown to HTML conversion."""
    html_body = text.strip()

    # Links
    html_body = re.sub(r'\[(.*?)\]\((.*?)\)', r'<a href="\2">\1</a>', html_body)

    # Bold
    html_body = re.sub(r'\*\*(.*?)\*\*', r'<strong>\1</strong>', html_body)

    # Bullets
    html_body = re.sub(r'^- (.*)$', r'&bull; \1', html_body, flags=re.MULTILINE)

    # Line breaks
    html_body = html_body.replace('\n\n', '</p><p>')
    html_body = html_body.replace('\n', '<br>')

    return f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <p>{html_body}</p>
            </div>
        </body>
        </html>
        """


def known_templates() -> Iterable[str]:
    return TEMPLATES.keys()


def render(template_id: str, inputs: Dict[str, Any]) -> str:
    """Render a template id to HTML. Raises KeyError for unknown templates."""
    body = TEMPLATES[template_id] + SIGNATURE + FOOTER
    values = {"baseUrl": config.BASE_URL, "unsubscribeUrl": config.UNSUBSCRIBE_URL}
    values.update({k: v for k, v in inputs.items() if v is not None})

    checklist = values.get("checklist")
    if isinstance(checklist, (list, tuple)):
        values["checklist"] = "\n".join(f"- {_text_value(item)}" for item in checklist)
    return markdown_to_html(substitute(body, values, raw=("checklist",)))


def render_subject(subject_template: str, inputs: Dict[str, Any]) -> str:
    return TOKEN_RE.sub(lambda m: str(inputs.get(m.group(1)) or ""), subject_template).strip(" -")


def tailored_cta(score: int, kind: Optional[SubmissionKind]) -> Tuple[str, str]:
    """(url, text) for the call to action, chosen by score and submission kind."""
    if score >= 70:
        return config.CALENDLY_LINKS["priority"], "Book Your Priority Strategy Session"
    key = CTA_LINK_KEYS.get(SubmissionKind(kind)) if kind else None
    if key:
        return config.CALENDLY_LINKS[key], "Schedule Your Consultation"
    return config.CALENDLY_LINKS["general"], "Schedule a Strategic Consultation"


def build_inputs(
    first_name: Optional[str],
    kind: Optional[SubmissionKind] = None,
    score: int = 0,
    **extra: Any,
) -> Dict[str, Any]:
    """Standard render inputs for a lead."""
    cta_url, cta_text = tailored_cta(score, kind)
    inputs: Dict[str, Any] = {
        "firstName": (first_name or "").strip() or "there",
        "ctaUrl": cta_url,
        "ctaText": cta_text,
        "serviceName": SERVICE_NAMES.get(SubmissionKind(kind), "Strategic Legal Counsel") if kind else "Strategic Legal Counsel",
    }
    inputs.update(extra)
    return inputs


def internal_alert_subject(lead: Dict[str, Any]) -> str:
    kind = SubmissionKind(lead["submission_kind"])
    name = " ".join(p for p in (lead.get("first_name"), lead.get("last_name")) if p) or lead["email"]
    prefix = "🔥 HIGH VALUE " if lead["score"] >= config.HIGH_VALUE_ALERT_SCORE else ""
    return f"{prefix}New {SERVICE_NAMES[kind]} Lead - {name} (Score: {lead['score']})"


def render_internal_alert(
    lead: Dict[str, Any],
    scheduling_link: str,
    attachments: Iterable[Tuple[str, int]] = (),
) -> str:
    """Staff notification: lead summary, score factors, form fields and attachment list."""
    rows = [
        ("Lead ID", lead["id"]),
        ("Name", " ".join(p for p in (lead.get("first_name"), lead.get("last_name")) if p)),
        ("Email", lead["email"]),
        ("Phone", lead.get("phone") or ""),
        ("Business", lead.get("business_name") or ""),
        ("Submission", SERVICE_NAMES[SubmissionKind(lead["submission_kind"])]),
        ("Score", f"{lead['score']}/100"),
        ("Priority", lead["priority"]),
        ("Profile", lead.get("profile") or ""),
        ("Scheduling link", scheduling_link),
    ]
    lines = [f"**{label}:** {_text_value(value)}" for label, value in rows if value]

    factors = lead.get("score_factors") or []
    if factors:
        lines.append("")
        lines.append("**Score factors:**")
        lines.extend(f"- {_text_value(f)}" for f in factors)

    form = lead.get("form_data") or {}
    if form:
        lines.append("")
        lines.append("**Submitted fields:**")
        lines.extend(f"- {_text_value(k)}: {_text_value(v)}" for k, v in sorted(form.items()))

    attachments = list(attachments)
    if attachments:
        lines.append("")
        lines.append(f"**Attachments ({len(attachments)}):**")
        lines.extend(f"- {_text_value(name)} ({size // 1024 or 1} KB)" for name, size in attachments)

    return markdown_to_html("\n".join(lines))
