"""
Typed accessors over the submitted form bag.

Web forms post camelCase keys (grossEstate, investmentPlan); the API accepts
snake_case as well. Every accessor takes the snake_case name and falls back to
the camelCase alias, so scoring and templates never touch raw keys directly.
Unknown keys stay in the bag untouched.
"""
import re
from typing import Any, Dict, Iterable, List, Optional

FREE_MAIL_DOMAINS = ("gmail.com", "yahoo.com", "hotmail.com")
TRUTHY = {"yes", "true", "1", "on", "y"}
_NUMBER_CLEAN = re.compile(r"[,$\s]")


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def raw(form: Dict[str, Any], name: str, default: Any = None) -> Any:
    if name in form and form[name] not in (None, ""):
        return form[name]
    alias = camel_case(name)
    if alias in form and form[alias] not in (None, ""):
        return form[alias]
    return default


def text(form: Dict[str, Any], name: str) -> str:
    value = raw(form, name, "")
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value).strip()


def number(form: Dict[str, Any], name: str) -> float:
    """Parse "12,500,000" / "$750k"-free numeric strings; anything unparsable is 0."""
    value = raw(form, name, 0)
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NUMBER_CLEAN.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def integer(form: Dict[str, Any], name: str) -> int:
    return int(number(form, name))


def flag(form: Dict[str, Any], name: str) -> bool:
    value = raw(form, name, False)
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY


def items(form: Dict[str, Any], name: str) -> List[str]:
    """Multi-value fields arrive as lists (JSON) or comma strings (multipart)."""
    value = raw(form, name, [])
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def contains(form: Dict[str, Any], name: str, needles: Iterable[str], case_sensitive: bool = True) -> bool:
    haystack = text(form, name)
    if not case_sensitive:
        haystack = haystack.lower()
        needles = [n.lower() for n in needles]
    return any(n in haystack for n in needles)


def email(form: Dict[str, Any]) -> str:
    return text(form, "email").lower()


def first_name(form: Dict[str, Any]) -> str:
    value = text(form, "first_name")
    if not value:
        full = text(form, "full_name") or text(form, "name")
        value = full.split(" ")[0] if full else ""
    return value


def last_name(form: Dict[str, Any]) -> str:
    value = text(form, "last_name")
    if not value:
        full = text(form, "full_name") or text(form, "name")
        parts = full.split(" ", 1) if full else []
        value = parts[1] if len(parts) > 1 else ""
    return value


def phone(form: Dict[str, Any]) -> Optional[str]:
    return text(form, "phone") or None


def business_name(form: Dict[str, Any]) -> Optional[str]:
    return text(form, "business_name") or text(form, "company_name") or text(form, "company") or None


def is_free_mail(address: str) -> bool:
    domain = address.rsplit("@", 1)[-1].lower() if "@" in address else ""
    return any(domain.endswith(d) for d in FREE_MAIL_DOMAINS)


def is_athlete(form: Dict[str, Any]) -> bool:
    return (
        "athlete" in text(form, "profession").lower()
        or text(form, "industry") == "sports"
        or text(form, "career_type") == "professional_athlete"
    )


def normalize(form: Dict[str, Any]) -> Dict[str, Any]:
    """Trim string values and lower-case the email. Returns a new dict."""
    cleaned = {}
    for key, value in form.items():
        if isinstance(value, str):
            value = value.strip()
        cleaned[key] = value
    if "email" in cleaned and isinstance(cleaned["email"], str):
        cleaned["email"] = cleaned["email"].lower()
    return cleaned
