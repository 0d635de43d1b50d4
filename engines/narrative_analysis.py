#!/usr/bin/env python3
"""
Narrative Analysis Generator for risk portfolios
Turns a risk collection into an executive summary, a banded health score,
ranked critical issues, strengths, and recommendations bucketed by urgency.
Recomputed from scratch on every call; callers memoize on (risks, filter).
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from core.logging import get_logger
from engines.enums import RiskLevel, RiskStatus, Strategy
from engines.health_score import (
    HealthScoreBreakdown,
    MitigationMetrics,
    ScoreBand,
    calculate_health_score,
    calculate_mitigation_metrics,
    score_band,
)
from engines.models import Risk, RiskFilter

logger = get_logger(__name__)


class AnalysisState(Enum):
    ANALYSED = "analysed"
    WELCOME = "welcome"


class IssueSeverity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"

    @property
    def rank(self) -> int:
        return {IssueSeverity.CRITICAL: 0, IssueSeverity.HIGH: 1, IssueSeverity.MEDIUM: 2}[self]


@dataclass(frozen=True)
class Issue:
    icon: str
    severity: IssueSeverity
    text: str


@dataclass(frozen=True)
class Strength:
    icon: str
    text: str


@dataclass
class RecommendationPlan:
    urgent: List[str] = field(default_factory=list)       # next 24-48h
    short_term: List[str] = field(default_factory=list)   # this week
    medium_term: List[str] = field(default_factory=list)  # this month
    continuous: List[str] = field(default_factory=list)

    def truncated(self, limit: int) -> "RecommendationPlan":
        return RecommendationPlan(
            urgent=self.urgent[:limit],
            short_term=self.short_term[:limit],
            medium_term=self.medium_term[:limit],
            continuous=self.continuous[:limit],
        )


@dataclass
class NarrativeAnalysis:
    state: AnalysisState
    executive_summary: str
    health_score: Optional[int] = None
    score_band: Optional[ScoreBand] = None
    breakdown: Optional[HealthScoreBreakdown] = None
    metrics: Optional[MitigationMetrics] = None
    critical_issues: List[Issue] = field(default_factory=list)
    strengths: List[Strength] = field(default_factory=list)
    recommendations: RecommendationPlan = field(default_factory=RecommendationPlan)

    @property
    def is_welcome(self) -> bool:
        return self.state is AnalysisState.WELCOME


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


class NarrativeAnalysisGenerator:
    """
    Produces the project health narrative shown on the dashboard.
    An empty collection yields the welcome state instead of a score.
    """

    MAX_ISSUES = 6
    MAX_STRENGTHS = 5
    MAX_RECOMMENDATIONS_PER_TIER = 3

    SUMMARY_CONDITIONS = (
        (81, "excellent", "showing mature risk management with robust controls and "
                          "proactive monitoring"),
        (61, "good", "with adequate controls in place and clear opportunities to raise "
                     "management effectiveness"),
        (41, "regular", "signalling that critical areas need attention; immediate corrective "
                        "actions can prevent significant adverse impact"),
        (21, "concerning", "with significant control deficiencies; mitigation must be "
                           "prioritised to reduce exposure"),
        (0, "critical", "demanding urgent intervention; current exposure is a severe threat "
                        "to objectives and requires immediate executive action"),
    )

    def __init__(self, stale_after_days: int = 60, overload_threshold: int = 7,
                 detailed_plan_min_chars: int = 150,
                 now: Optional[Callable[[], datetime]] = None):
        self.stale_after_days = stale_after_days
        self.overload_threshold = overload_threshold
        self.detailed_plan_min_chars = detailed_plan_min_chars
        self.now = now or datetime.now

    def generate_complete_analysis(self, risks: Sequence[Risk],
                                   risk_filter: Optional[RiskFilter] = None) -> NarrativeAnalysis:
        selected = risk_filter.apply(risks) if risk_filter else list(risks)
        project_name = risk_filter.project_name if risk_filter else None

        if not selected:
            return self._welcome(project_name)

        today = self.now().date()
        breakdown = calculate_health_score(selected, today)
        metrics = calculate_mitigation_metrics(selected, today)
        normalized = breakdown.normalized_score

        issues = self.identify_critical_issues(selected, metrics)
        analysis = NarrativeAnalysis(
            state=AnalysisState.ANALYSED,
            executive_summary=self.executive_summary(normalized, len(selected), project_name),
            health_score=normalized,
            score_band=score_band(normalized),
            breakdown=breakdown,
            metrics=metrics,
            critical_issues=issues,
            strengths=self.identify_strengths(selected, metrics),
            recommendations=self.prioritized_recommendations(selected),
        )
        logger.debug("narrative_analysis_generated", risks=len(selected), score=normalized,
                     issues=len(issues))
        return analysis

    def _welcome(self, project_name: Optional[str]) -> NarrativeAnalysis:
        context = f'Project "{project_name}"' if project_name else "The portfolio"
        summary = (f"{context} has no mapped risks yet. Create your first risk to start a "
                   f"systematic analysis of what could affect your strategic objectives.")
        plan = RecommendationPlan(
            urgent=["Start a systematic mapping of risks that can impact strategic objectives"],
            short_term=["Define the risk categories relevant to the project context"],
            medium_term=["Establish a probability and impact matrix aligned with the objectives"],
        )
        return NarrativeAnalysis(state=AnalysisState.WELCOME, executive_summary=summary,
                                 recommendations=plan)

    def executive_summary(self, normalized_score: int, total_risks: int,
                          project_name: Optional[str] = None) -> str:
        context = f'Project "{project_name}"' if project_name else "The portfolio"
        for minimum, condition, detail in self.SUMMARY_CONDITIONS:
            if normalized_score >= minimum:
                break
        mapped = _plural(total_risks, "mapped risk", "mapped risks")
        return (f"{context} is in {condition} condition (Score: {normalized_score}/100) with "
                f"{total_risks} {mapped}, {detail}.")

    # Issue detection

    def _is_stagnant(self, risk: Risk, today) -> bool:
        if risk.identified_on is None or risk.status is not RiskStatus.IDENTIFIED:
            return False
        return (today - risk.identified_on).days > self.stale_after_days

    def _lacks_detailed_plan(self, risk: Risk) -> bool:
        return len(risk.mitigation_actions or "") < self.detailed_plan_min_chars

    def _owner_loads(self, risks: Sequence[Risk]) -> Dict[str, List]:
        loads: "OrderedDict[str, List]" = OrderedDict()
        for risk in risks:
            if risk.owner is None:
                continue
            entry = loads.setdefault(risk.owner.id, [risk.owner.label, 0])
            entry[1] += 1
        return loads

    def identify_critical_issues(self, risks: Sequence[Risk],
                                 metrics: MitigationMetrics) -> List[Issue]:
        today = self.now().date()
        issues: List[Issue] = []

        critical_without_plan = [r for r in risks
                                 if r.level is RiskLevel.CRITICAL and self._lacks_detailed_plan(r)]
        if critical_without_plan:
            count = len(critical_without_plan)
            issues.append(Issue("🚨", IssueSeverity.CRITICAL,
                                f"{count} {_plural(count, 'critical risk', 'critical risks')} "
                                f"without a detailed mitigation plan "
                                f"(minimum {self.detailed_plan_min_chars} characters)"))

        unassigned = [r for r in risks if r.level.is_priority and r.owner is None]
        if unassigned:
            count = len(unassigned)
            issues.append(Issue("👤", IssueSeverity.CRITICAL,
                                f"{count} {_plural(count, 'priority risk', 'priority risks')} "
                                f"without an assigned owner"))

        overdue = [r for r in risks if r.is_overdue(today)]
        if overdue:
            count = len(overdue)
            issues.append(Issue("📅", IssueSeverity.HIGH,
                                f"{count} {_plural(count, 'risk', 'risks')} past the mitigation "
                                f"deadline and not yet resolved"))

        without_deadline = [r for r in risks if r.level.is_priority and r.deadline is None]
        if without_deadline:
            count = len(without_deadline)
            issues.append(Issue("⏰", IssueSeverity.HIGH,
                                f"{count} high priority {_plural(count, 'risk', 'risks')} "
                                f"without a deadline"))

        stagnant = [r for r in risks if self._is_stagnant(r, today)]
        if stagnant:
            count = len(stagnant)
            issues.append(Issue("⚠️", IssueSeverity.HIGH,
                                f"{count} {_plural(count, 'risk', 'risks')} identified more than "
                                f"{self.stale_after_days} days ago without progress"))

        if metrics.mitigation_efficiency < 25 and len(risks) > 3:
            in_treatment = metrics.risks_in_treatment + metrics.effectively_mitigated
            issues.append(Issue("📊", IssueSeverity.HIGH,
                                f"Critical mitigation efficiency "
                                f"({round(metrics.mitigation_efficiency)}%): only {in_treatment} "
                                f"of {len(risks)} risks under treatment"))

        passive = [r for r in risks if r.level.is_priority and r.strategy is Strategy.ACCEPT]
        if passive:
            count = len(passive)
            issues.append(Issue("🛡️", IssueSeverity.MEDIUM,
                                f"{count} severe {_plural(count, 'risk', 'risks')} with a passive "
                                f'("Accept") strategy'))

        overloaded = [name for name, count in self._owner_loads(risks).values()
                      if count > self.overload_threshold]
        if overloaded:
            count = len(overloaded)
            issues.append(Issue("⚖️", IssueSeverity.MEDIUM,
                                f"{count} {_plural(count, 'owner', 'owners')} overloaded "
                                f"(>{self.overload_threshold} risks): {', '.join(overloaded)}"))

        ai_pending = [r for r in risks if r.status.is_ai_populated]
        if ai_pending:
            count = len(ai_pending)
            issues.append(Issue("🤖", IssueSeverity.MEDIUM,
                                f"{count} AI-populated {_plural(count, 'risk', 'risks')} "
                                f"awaiting human review"))

        # sorted() is stable, so detection order breaks severity ties
        issues = sorted(issues, key=lambda issue: issue.severity.rank)
        return issues[:self.MAX_ISSUES]

    def identify_strengths(self, risks: Sequence[Risk],
                           metrics: MitigationMetrics) -> List[Strength]:
        if not risks:
            return []

        total = len(risks)
        strengths: List[Strength] = []

        if metrics.effectively_mitigated > 0:
            count = metrics.effectively_mitigated
            share = round(count / total * 100)
            strengths.append(Strength("✨", f"{count} {_plural(count, 'risk', 'risks')} "
                                            f"effectively mitigated ({share}% of the portfolio)"))

        if metrics.action_quality_score >= 0.7:
            strengths.append(Strength("📝", f"High quality action plans (score "
                                            f"{metrics.action_quality_score * 100:.0f}%) with "
                                            f"detailed documentation"))

        assigned = sum(1 for r in risks if r.owner is not None)
        if assigned == total:
            strengths.append(Strength("🎯", "100% of risks assigned to owners: full ownership "
                                            "clarity"))
        elif assigned / total >= 0.8:
            strengths.append(Strength("🎯", f"{round(assigned / total * 100)}% of risks have "
                                            f"an assigned owner"))

        if not any(r.level is RiskLevel.CRITICAL for r in risks):
            strengths.append(Strength("🛡️", "No risks at critical level: exposure under control"))

        if metrics.mitigation_efficiency >= 60:
            in_treatment = metrics.risks_in_treatment + metrics.effectively_mitigated
            strengths.append(Strength("⚡", f"Excellent mitigation efficiency "
                                            f"({round(metrics.mitigation_efficiency)}%): "
                                            f"{in_treatment} risks under active treatment"))

        monitoring = sum(1 for r in risks if r.status is RiskStatus.MONITORING)
        if monitoring and monitoring / total >= 0.3:
            strengths.append(Strength("👁️", f"{monitoring} {_plural(monitoring, 'risk', 'risks')} "
                                            f"under continuous proactive monitoring"))

        loads = [count for _, count in self._owner_loads(risks).values()]
        if len(loads) > 1 and max(loads) <= 5:
            strengths.append(Strength("⚖️", f"Workload well distributed across {len(loads)} "
                                            f"owners (max. {max(loads)} risks per person)"))

        return strengths[:self.MAX_STRENGTHS]

    def prioritized_recommendations(self, risks: Sequence[Risk]) -> RecommendationPlan:
        today = self.now().date()
        plan = RecommendationPlan()

        # Urgent (24-48h)
        critical = [r for r in risks if r.level is RiskLevel.CRITICAL]
        critical_unassigned = [r for r in critical if r.owner is None]
        if critical_unassigned:
            plan.urgent.append(f"Assign an owner now to the {len(critical_unassigned)} "
                               f"unattended critical risks")

        critical_without_plan = [r for r in critical if self._lacks_detailed_plan(r)]
        if critical_without_plan:
            codes = ", ".join(r.code for r in critical_without_plan[:3])
            extra = len(critical_without_plan) - 3
            suffix = f" and {extra} others" if extra > 0 else ""
            minimum = self.detailed_plan_min_chars
            plan.urgent.append(f"Detail action plans (min. {minimum} characters) for critical "
                               f"risks: {codes}{suffix}")

        critical_without_deadline = [r for r in critical if r.deadline is None]
        if critical_without_deadline:
            plan.urgent.append(f"Set mitigation deadlines for {len(critical_without_deadline)} "
                               f"critical risks")

        # Short term (this week)
        overdue = [r for r in risks if r.is_overdue(today)]
        if overdue:
            plan.short_term.append(f"Replan or close {len(overdue)} risks with expired deadlines")

        high_without_deadline = [r for r in risks
                                 if r.level is RiskLevel.HIGH and r.deadline is None]
        if high_without_deadline:
            plan.short_term.append(f"Define a mitigation schedule for {len(high_without_deadline)} "
                                   f"high priority risks")

        ready = [r for r in risks
                 if r.status is RiskStatus.IDENTIFIED and r.owner is not None
                 and len(r.mitigation_actions or "") > 100]
        if ready:
            plan.short_term.append(f'Promote {len(ready)} ready risks from "Identified" to '
                                   f'"In progress"')

        shallow = [r for r in risks if 0 < len(r.mitigation_actions or "") < 100]
        if shallow:
            plan.short_term.append(f"Enrich the documentation of {len(shallow)} risks with "
                                   f"superficial actions")

        ai_pending = [r for r in risks if r.status.is_ai_populated]
        if ai_pending:
            plan.short_term.append(f"Review and confirm {len(ai_pending)} AI-populated risks")

        # Medium term (this month)
        stagnant = [r for r in risks if self._is_stagnant(r, today)]
        if stagnant:
            plan.medium_term.append(f"Review relevance and update the status of {len(stagnant)} "
                                    f"stagnant risks (>{self.stale_after_days} days)")

        overloaded = [(name, count) for name, count in self._owner_loads(risks).values()
                      if count > self.overload_threshold]
        if overloaded:
            names = ", ".join(f"{name} ({count})" for name, count in overloaded)
            plan.medium_term.append(f"Redistribute the load of overloaded owners: {names}")

        passive = [r for r in risks if r.level.is_priority and r.strategy is Strategy.ACCEPT]
        if passive:
            plan.medium_term.append(f"Review the strategy of {len(passive)} severe risks with a "
                                    f"passive stance")

        # Continuous improvement
        if any(r.status is RiskStatus.MONITORING for r in risks):
            plan.continuous.append("Hold monthly follow-ups on risks under monitoring")
        plan.continuous.extend([
            "Run quarterly reviews of mitigation strategy effectiveness",
            "Keep documentation current with lessons learned and good practices",
            "Track efficiency indicators (KPIs) to adjust proactively",
        ])

        return plan.truncated(self.MAX_RECOMMENDATIONS_PER_TIER)
