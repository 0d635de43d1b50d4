#!/usr/bin/env python3
"""
Domain records for the risk register analysis engines.
Owner, project and creator are resolved by the caller into Reference values
before any engine sees a Risk.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional

from engines.enums import Impact, Probability, RiskCategory, RiskLevel, RiskStatus, Strategy
from engines.risk_levels import calculate_risk_level


@dataclass(frozen=True)
class Reference:
    """Resolved pointer to an owner, project or creator"""
    id: str
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.id


@dataclass
class Risk:
    """One identified risk; level is always derived from probability and impact"""
    id: str
    code: str
    description: str
    category: Optional[RiskCategory] = None
    probability: Optional[Probability] = None
    impact: Optional[Impact] = None
    status: RiskStatus = RiskStatus.IDENTIFIED
    strategy: Optional[Strategy] = None
    causes_text: Optional[str] = None  # legacy free-text causes
    consequences: Optional[str] = None
    mitigation_actions: Optional[str] = None
    contingency_actions: Optional[str] = None
    owner: Optional[Reference] = None
    project: Optional[Reference] = None
    creator: Optional[Reference] = None
    deadline: Optional[date] = None
    notes: Optional[str] = None
    identified_on: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.category = RiskCategory.coerce(self.category)
        self.probability = Probability.coerce(self.probability)
        self.impact = Impact.coerce(self.impact)
        self.status = RiskStatus.coerce(self.status) or RiskStatus.IDENTIFIED
        self.strategy = Strategy.coerce(self.strategy)

    @property
    def level(self) -> RiskLevel:
        return calculate_risk_level(self.probability, self.impact)

    @property
    def reference_date(self) -> Optional[date]:
        """Date used to place the risk on a timeline"""
        if self.identified_on:
            return self.identified_on
        if self.created_at:
            return self.created_at.date()
        return None

    def is_overdue(self, today: date) -> bool:
        return bool(self.deadline and self.deadline < today and not self.status.is_resolved)


@dataclass
class Cause:
    """Short statement explaining why a risk may occur"""
    id: Optional[str]
    risk_id: str
    description: str
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class RiskHistoryEntry:
    """Immutable snapshot of a risk's assessment fields"""
    risk_id: str
    probability: Optional[Probability]
    impact: Optional[Impact]
    level: RiskLevel
    status: RiskStatus
    notes: Optional[str]
    actor: Optional[Reference]
    recorded_at: datetime
    id: Optional[str] = None


@dataclass(frozen=True)
class RiskFilter:
    """Caller-owned filter applied before analysis and reporting"""
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    category: Optional[RiskCategory] = None
    status: Optional[RiskStatus] = None
    owner_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def matches(self, risk: Risk) -> bool:
        if self.start_date and self.end_date:
            reference = risk.reference_date
            if reference is None or not (self.start_date <= reference <= self.end_date):
                return False

        if self.category is not None and risk.category is not RiskCategory.coerce(self.category):
            return False

        if self.project_id is not None:
            if risk.project is None or risk.project.id != self.project_id:
                return False
        elif self.project_name is not None:
            if risk.project is None or risk.project.name != self.project_name:
                return False

        if self.status is not None and risk.status is not RiskStatus.coerce(self.status):
            return False

        if self.owner_id is not None and (risk.owner is None or risk.owner.id != self.owner_id):
            return False

        return True

    def apply(self, risks: Iterable[Risk]) -> List[Risk]:
        return [risk for risk in risks if self.matches(risk)]


@dataclass
class CauseCluster:
    """Group of cause rows sharing the same normalized description"""
    description: str
    key: str
    frequency: int
    cause_ids: List[str] = field(default_factory=list)
    risk_ids: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    high_impact_risks: int = 0
    medium_impact_risks: int = 0
    low_impact_risks: int = 0
    impact_score: float = 0.0       # 0-5
    criticality_score: float = 0.0  # 0-25
    frequency_score: float = 0.0    # 0-1
    trend_score: float = 1.0        # 0-3
    complexity_score: float = 0.0   # 0-2
    reliability_score: float = 0.0  # 0-1
    final_score: float = 0.0        # 0-10

    @property
    def trend_label(self) -> str:
        if self.trend_score > 1.5:
            return "increasing"
        if self.trend_score >= 1.0:
            return "stable"
        return "decreasing"
