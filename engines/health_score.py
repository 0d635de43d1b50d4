#!/usr/bin/env python3
"""
Portfolio Health Score
Penalises exposure (critical/high share, missing owners, missing or overdue
deadlines) and rewards mitigation work (action quality, treatment progress,
resolved risks). The raw 0-100 score is normalised against its practical
ceiling of 85 and mapped onto five labelled bands.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from engines.enums import RiskLevel, RiskStatus, Strategy
from engines.models import Risk


# Score that a well-run portfolio realistically reaches; normalised to 100
PRACTICAL_MAX_SCORE = 85


@dataclass
class MitigationMetrics:
    risks_with_actions: int = 0
    risks_in_treatment: int = 0
    effectively_mitigated: int = 0
    mitigation_efficiency: float = 0.0  # percentage 0-100
    action_quality_score: float = 0.0   # 0-1


@dataclass
class HealthScoreBreakdown:
    base_score: float
    risk_level_penalty: float
    assignment_penalty: float
    deadline_penalty: float
    overdue_penalty: float
    mitigation_bonus: float
    final_score: int

    @property
    def normalized_score(self) -> int:
        return normalize_score(self.final_score)


@dataclass(frozen=True)
class ScoreBand:
    label: str
    range: str
    minimum: int
    maximum: int
    description: str
    implication: str


SCORE_BANDS = (
    ScoreBand(
        label="Critical", range="0-20", minimum=0, maximum=20,
        description=("Exposure is severe. Controls are insufficient or missing and "
                     "threaten the objectives directly."),
        implication=("Immediate executive intervention required: mobilise resources, form a "
                     "response taskforce and start emergency actions within 24-48 hours."),
    ),
    ScoreBand(
        label="Poor", range="21-40", minimum=21, maximum=40,
        description=("Risk controls have significant gaps; current exposure can cause "
                     "adverse impact on project objectives."),
        implication=("Urgent corrective action: write detailed mitigation plans, assign clear "
                     "owners and set firm deadlines for priority risks."),
    ),
    ScoreBand(
        label="Regular", range="41-60", minimum=41, maximum=60,
        description=("Basic controls exist but important gaps increase exposure. "
                     "Specific areas need immediate attention."),
        implication=("Prioritise owner assignment, deadlines and action detail for high "
                     "criticality risks. Improvement is achievable with focused effort."),
    ),
    ScoreBand(
        label="Good", range="61-80", minimum=61, maximum=80,
        description=("Controls are adequate and governance is consistent, with clear "
                     "opportunities to raise effectiveness."),
        implication=("Detail mitigation plans further, tighten schedules and improve the "
                     "quality of action documentation."),
    ),
    ScoreBand(
        label="Excellent", range="81-100", minimum=81, maximum=100,
        description=("Risk management is mature: robust controls, proactive monitoring "
                     "and effective actions."),
        implication=("Keep the standard: review control effectiveness periodically and adjust "
                     "strategies as the context changes."),
    ),
)


def normalize_score(score: float, max_score: float = PRACTICAL_MAX_SCORE) -> int:
    if max_score <= 0:
        return 0
    return max(0, min(100, round(score / max_score * 100)))


def score_band(normalized_score: float) -> ScoreBand:
    for band in reversed(SCORE_BANDS):
        if normalized_score >= band.minimum:
            return band
    return SCORE_BANDS[0]


def analyze_action_quality(risk: Risk, today: Optional[date] = None) -> float:
    """Quality of a risk's response plan in [0, 1].

    An expired deadline earns no schedule credit when today is given.
    """
    quality = 0.0

    mitigation = risk.mitigation_actions or ""
    if len(mitigation) > 100:
        quality += 0.4
    elif len(mitigation) > 50:
        quality += 0.25
    elif len(mitigation) > 20:
        quality += 0.15

    if risk.contingency_actions and len(risk.contingency_actions) > 50:
        quality += 0.2

    if risk.strategy and risk.strategy is not Strategy.ACCEPT:
        quality += 0.2

    if risk.owner and risk.deadline:
        if today is None or not risk.is_overdue(today):
            quality += 0.2

    return min(1.0, quality)


def calculate_mitigation_metrics(risks: Sequence[Risk],
                                 today: Optional[date] = None) -> MitigationMetrics:
    if not risks:
        return MitigationMetrics()

    total = len(risks)
    with_actions = sum(1 for r in risks if r.mitigation_actions and len(r.mitigation_actions) > 20)
    in_treatment = sum(1 for r in risks if r.status.is_in_treatment)
    mitigated = sum(1 for r in risks if r.status.is_resolved)
    quality = sum(analyze_action_quality(r, today) for r in risks) / total

    return MitigationMetrics(
        risks_with_actions=with_actions,
        risks_in_treatment=in_treatment,
        effectively_mitigated=mitigated,
        mitigation_efficiency=(in_treatment + mitigated) / total * 100,
        action_quality_score=quality,
    )


def calculate_health_score(risks: Sequence[Risk], today: date) -> HealthScoreBreakdown:
    """Raw 0-100 health score with the contribution of each component"""
    if not risks:
        return HealthScoreBreakdown(
            base_score=PRACTICAL_MAX_SCORE, risk_level_penalty=0.0, assignment_penalty=0.0,
            deadline_penalty=0.0, overdue_penalty=0.0, mitigation_bonus=0.0,
            final_score=PRACTICAL_MAX_SCORE,
        )

    total = len(risks)
    base_score = 100.0

    critical = sum(1 for r in risks if r.level is RiskLevel.CRITICAL)
    high = sum(1 for r in risks if r.level is RiskLevel.HIGH)
    risk_level_penalty = critical / total * 40 + high / total * 20

    unassigned = sum(1 for r in risks if r.owner is None)
    assignment_penalty = unassigned / total * 15

    without_deadline = sum(1 for r in risks if r.deadline is None)
    deadline_penalty = without_deadline / total * 10

    overdue = sum(1 for r in risks if r.is_overdue(today))
    overdue_penalty = overdue / total * 10

    metrics = calculate_mitigation_metrics(risks, today)
    mitigation_bonus = (
        metrics.action_quality_score * 15
        + metrics.mitigation_efficiency / 100 * 20
        + metrics.effectively_mitigated / total * 15
    )

    raw = (base_score - risk_level_penalty - assignment_penalty - deadline_penalty
           - overdue_penalty + mitigation_bonus)
    final_score = max(0, min(100, round(raw)))

    return HealthScoreBreakdown(
        base_score=base_score,
        risk_level_penalty=risk_level_penalty,
        assignment_penalty=assignment_penalty,
        deadline_penalty=deadline_penalty,
        overdue_penalty=overdue_penalty,
        mitigation_bonus=mitigation_bonus,
        final_score=final_score,
    )


def generate_proactive_suggestions(risks: Sequence[Risk]) -> List[str]:
    suggestions = []

    without_actions = sum(1 for r in risks
                          if not r.mitigation_actions or len(r.mitigation_actions) < 20)
    if without_actions:
        suggestions.append(f"{without_actions} risks need detailed mitigation actions")

    promotable = sum(1 for r in risks
                     if r.status is RiskStatus.IDENTIFIED
                     and r.mitigation_actions and len(r.mitigation_actions) > 50)
    if promotable:
        suggestions.append(f'{promotable} risks can be promoted to "In progress"')

    critical_without_actions = sum(1 for r in risks
                                   if r.level is RiskLevel.CRITICAL
                                   and (not r.mitigation_actions or len(r.mitigation_actions) < 50))
    if critical_without_actions:
        suggestions.append(f"{critical_without_actions} critical risks need urgent actions")

    unassigned_priority = sum(1 for r in risks if r.level.is_priority and r.owner is None)
    if unassigned_priority:
        suggestions.append(f"{unassigned_priority} high priority risks need an owner")

    return suggestions
