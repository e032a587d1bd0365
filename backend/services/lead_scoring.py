"""
Lead Scoring

Deterministic scoring of one submission against the rubric tables in
scoring_rubric.py. No I/O and no clock: the same form and kind always give the
same score, priority and factor list.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from models import Priority, SubmissionKind
from services import scoring_rubric as rubric
from services.scoring_rubric import FirstOf, Ladder, Rule, When
from utils import form_fields as ff

logger = logging.getLogger(__name__)


@dataclass
class LeadScore:
    score: int
    priority: Priority
    factors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "priority": self.priority.value, "factors": list(self.factors)}


def matches(cond: When, form: Dict[str, Any]) -> bool:
    op = cond.op
    if op == "any":
        return any(matches(c, form) for c in cond.value)
    if op == "all":
        return all(matches(c, form) for c in cond.value)
    if op == "athlete":
        return ff.is_athlete(form)
    if op == "eq":
        return ff.text(form, cond.field) == cond.value
    if op == "contains":
        return ff.contains(form, cond.field, [cond.value])
    if op == "icontains":
        return ff.contains(form, cond.field, [cond.value], case_sensitive=False)
    if op == "flag":
        return ff.flag(form, cond.field)
    if op == "present":
        return bool(ff.text(form, cond.field))
    if op == "gt":
        return ff.number(form, cond.field) > cond.value
    if op == "longer_than":
        return len(ff.text(form, cond.field)) > cond.value
    if op == "includes":
        return cond.value in ff.items(form, cond.field)
    if op == "free_mail":
        return ff.is_free_mail(ff.text(form, cond.field)) == bool(cond.value)
    raise ValueError(f"Unknown rubric op: {op}")


def _apply(entry, form: Dict[str, Any], factors: List[str]) -> int:
    if isinstance(entry, Rule):
        if matches(entry.when, form):
            factors.append(f"{entry.label}: +{entry.points}")
            return entry.points
        return 0
    if isinstance(entry, FirstOf):
        for rule in entry.rules:
            if matches(rule.when, form):
                factors.append(f"{rule.label}: +{rule.points}")
                return rule.points
        return 0
    if isinstance(entry, Ladder):
        value = ff.number(form, entry.field)
        for threshold, points, label in entry.steps:
            if value > threshold:
                factors.append(f"{label}: +{points}")
                return points
        return 0
    raise TypeError(f"Unknown rubric entry: {entry!r}")


def _base(kind: SubmissionKind, form: Dict[str, Any], factors: List[str]) -> int:
    points, override = rubric.base_for(kind)
    if override is None:
        factors.append(f"Base {kind.slug}: +{points}")
        return points
    raw_value = ff.integer(form, override.field)
    if override.mode == "inverted_risk":
        # risk 0..30 maps onto 100..40, never below 30
        points = max(30, 100 - 2 * raw_value)
        factors.append(f"{override.label}: +{points} (risk {raw_value})")
        return points
    points = raw_value
    factors.append(f"{override.label}: +{points}")
    return points


def priority_for(score: int, kind: SubmissionKind, form: Dict[str, Any]) -> Priority:
    band = next(name for floor, name in rubric.PRIORITY_BANDS if score >= floor)
    if score >= rubric.CRITICAL_SCORE and (
        kind in rubric.CRITICAL_KINDS or any(matches(c, form) for c in rubric.CRITICAL_TRIGGERS)
    ):
        return Priority.CRITICAL
    return Priority(band)


def score_submission(form: Dict[str, Any], kind: SubmissionKind) -> LeadScore:
    """Score a submission. Factors are kept in the order they were applied."""
    kind = SubmissionKind(kind)
    factors: List[str] = []
    total = _base(kind, form, factors)
    for entry in rubric.rules_for(kind):
        total += _apply(entry, form, factors)
    for entry in rubric.UNIVERSAL_RULES:
        total += _apply(entry, form, factors)

    score = max(0, min(total, 100))
    priority = priority_for(score, kind, form)
    logger.debug(f"Lead scored kind={kind.value} score={score} factors={len(factors)}")
    return LeadScore(score=score, priority=priority, factors=factors)
