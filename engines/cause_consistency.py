#!/usr/bin/env python3
"""
Consistency checks between risks and their structured cause rows.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from engines.cause_analysis import cause_key
from engines.models import Cause, Risk


class IssueType(Enum):
    ORPHANED_CAUSE = "orphaned_cause"
    MISSING_SYNC = "missing_sync"
    DUPLICATE_DESCRIPTION = "duplicate_description"
    INVALID_CATEGORY = "invalid_category"


class IssueSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Cause categories accepted by the cause editor (a superset of risk categories)
STANDARD_CAUSE_CATEGORIES = (
    'Tecnologia', 'Recursos Humanos', 'Financeiro', 'Operacional',
    'Compliance', 'Estratégico', 'Regulatório', 'Cronograma',
    'Recursos', 'Técnico', 'Comunicação', 'Legal/Regulatório', 'Externo',
)


@dataclass(frozen=True)
class ConsistencyIssue:
    type: IssueType
    severity: IssueSeverity
    message: str
    cause_id: Optional[str] = None
    risk_id: Optional[str] = None
    action: Optional[str] = None

    @property
    def auto_resolvable(self) -> bool:
        return self.action in ('delete_cause', 'sync_causes')


@dataclass
class ConsistencyReport:
    issues: List[ConsistencyIssue]

    @property
    def counts(self) -> Dict[str, int]:
        tally = Counter(issue.severity for issue in self.issues)
        return {severity.value: tally[severity] for severity in IssueSeverity}

    @property
    def has_high_severity(self) -> bool:
        return any(issue.severity is IssueSeverity.HIGH for issue in self.issues)

    @property
    def auto_resolvable(self) -> List[ConsistencyIssue]:
        return [issue for issue in self.issues if issue.auto_resolvable]


def validate_consistency(risks: Iterable[Risk], causes: Sequence[Cause],
                         valid_categories: Sequence[str] = STANDARD_CAUSE_CATEGORIES
                         ) -> ConsistencyReport:
    risks = list(risks)
    issues: List[ConsistencyIssue] = []
    risk_ids = {risk.id for risk in risks}

    for cause in causes:
        if cause.risk_id not in risk_ids:
            issues.append(ConsistencyIssue(
                type=IssueType.ORPHANED_CAUSE,
                severity=IssueSeverity.HIGH,
                message=f'Cause "{cause.description}" references a missing risk ({cause.risk_id})',
                cause_id=cause.id,
                risk_id=cause.risk_id,
                action='delete_cause',
            ))

    risks_with_causes = {cause.risk_id for cause in causes}
    for risk in risks:
        if risk.id in risks_with_causes and not (risk.causes_text or "").strip():
            issues.append(ConsistencyIssue(
                type=IssueType.MISSING_SYNC,
                severity=IssueSeverity.MEDIUM,
                message=f'Risk "{risk.code}" has structured causes but an empty causes field',
                risk_id=risk.id,
                action='sync_causes',
            ))

    descriptions = Counter(cause_key(cause.description) for cause in causes)
    for description, count in descriptions.items():
        if description and count > 1:
            issues.append(ConsistencyIssue(
                type=IssueType.DUPLICATE_DESCRIPTION,
                severity=IssueSeverity.LOW,
                message=f'Description "{description}" appears {count} times; consider merging',
                action='merge_duplicates',
            ))

    allowed = set(valid_categories)
    for cause in causes:
        if cause.category and cause.category not in allowed:
            issues.append(ConsistencyIssue(
                type=IssueType.INVALID_CATEGORY,
                severity=IssueSeverity.LOW,
                message=f'Category "{cause.category}" is not standard for cause "{cause.description}"',
                cause_id=cause.id,
                action='fix_category',
            ))

    return ConsistencyReport(issues=issues)
