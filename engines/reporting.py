#!/usr/bin/env python3
"""
Report Aggregator
Buckets a filtered risk collection into a trailing 12-month trend series,
category/status/project distributions and headline metrics.
"""

from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, List, Optional, Sequence

from core.logging import get_logger
from engines.enums import ImpactBand, RiskStatus
from engines.models import Risk, RiskFilter

logger = get_logger(__name__)

# Fixed so labels never depend on the process locale
MONTH_ABBREVIATIONS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
                       "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

TREND_MONTHS = 12
TOP_PROJECTS = 10
NO_PROJECT = "No project"
UNCATEGORIZED = "Uncategorized"


@dataclass
class MonthBucket:
    label: str
    year: int
    month: int
    high: int = 0
    medium: int = 0
    low: int = 0
    total: int = 0


@dataclass
class CategoryBucket:
    name: str
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


@dataclass(frozen=True)
class StatusBucket:
    name: str
    value: int
    percentage: float


@dataclass(frozen=True)
class ProjectBucket:
    name: str
    value: int


@dataclass(frozen=True)
class ReportMetrics:
    total: int
    high: int
    medium: int
    low: int
    mitigated: int
    mitigation_rate: int


@dataclass
class RiskReport:
    filtered_risks: List[Risk]
    monthly_trends: List[MonthBucket]
    category_distribution: List[CategoryBucket]
    status_distribution: List[StatusBucket]
    project_distribution: List[ProjectBucket]
    metrics: ReportMetrics
    generated_at: Optional[datetime] = field(default=None)


def mitigation_rate(mitigated: int, total: int) -> int:
    """Rounded percentage of mitigated risks; 0 for an empty collection"""
    if total <= 0:
        return 0
    return round(mitigated / total * 100)


def _shift_month(year: int, month: int, offset: int):
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def _month_label(year: int, month: int) -> str:
    return f"{MONTH_ABBREVIATIONS[month - 1]}/{year}"


class ReportAggregator:
    """Trend and distribution views over a risk collection"""

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        self.now = now or datetime.now

    def build_report(self, risks: Sequence[Risk],
                     filters: Optional[RiskFilter] = None) -> RiskReport:
        selected = filters.apply(risks) if filters else list(risks)
        now = self.now()

        report = RiskReport(
            filtered_risks=selected,
            monthly_trends=self.monthly_trends(selected, now.date()),
            category_distribution=self.category_distribution(selected),
            status_distribution=self.status_distribution(selected),
            project_distribution=self.project_distribution(selected),
            metrics=self.metrics(selected),
            generated_at=now,
        )
        logger.debug("risk_report_built", risks=len(selected), total_input=len(risks))
        return report

    def monthly_trends(self, risks: Sequence[Risk], today: date) -> List[MonthBucket]:
        buckets: "OrderedDict[tuple, MonthBucket]" = OrderedDict()
        for offset in range(-(TREND_MONTHS - 1), 1):
            year, month = _shift_month(today.year, today.month, offset)
            buckets[(year, month)] = MonthBucket(label=_month_label(year, month),
                                                 year=year, month=month)

        for risk in risks:
            reference = risk.reference_date
            if reference is None:
                continue
            bucket = buckets.get((reference.year, reference.month))
            if bucket is None:
                continue
            band = risk.level.impact_band
            if band is ImpactBand.HIGH:
                bucket.high += 1
            elif band is ImpactBand.MEDIUM:
                bucket.medium += 1
            else:
                bucket.low += 1
            bucket.total += 1

        return list(buckets.values())

    def category_distribution(self, risks: Sequence[Risk]) -> List[CategoryBucket]:
        buckets: "OrderedDict[str, CategoryBucket]" = OrderedDict()
        for risk in risks:
            name = risk.category.value if risk.category else UNCATEGORIZED
            bucket = buckets.setdefault(name, CategoryBucket(name=name))
            bucket.total += 1
            band = risk.level.impact_band
            if band is ImpactBand.HIGH:
                bucket.high += 1
            elif band is ImpactBand.MEDIUM:
                bucket.medium += 1
            else:
                bucket.low += 1
        return list(buckets.values())

    def status_distribution(self, risks: Sequence[Risk]) -> List[StatusBucket]:
        if not risks:
            return []
        counts = Counter(risk.status.value for risk in risks)
        total = len(risks)
        return [StatusBucket(name=name, value=value, percentage=round(value / total * 100, 1))
                for name, value in counts.items()]

    def project_distribution(self, risks: Sequence[Risk]) -> List[ProjectBucket]:
        counts = Counter(risk.project.label if risk.project else NO_PROJECT for risk in risks)
        # most_common keeps first-seen order among equal counts
        return [ProjectBucket(name=name, value=value)
                for name, value in counts.most_common(TOP_PROJECTS)]

    def metrics(self, risks: Sequence[Risk]) -> ReportMetrics:
        bands = Counter(risk.level.impact_band for risk in risks)
        mitigated = sum(1 for risk in risks if risk.status is RiskStatus.MITIGATED)
        return ReportMetrics(
            total=len(risks),
            high=bands[ImpactBand.HIGH],
            medium=bands[ImpactBand.MEDIUM],
            low=bands[ImpactBand.LOW],
            mitigated=mitigated,
            mitigation_rate=mitigation_rate(mitigated, len(risks)),
        )
