#!/usr/bin/env python3
"""
Risk history snapshots
Every meaningful change to a risk's assessment (probability, impact, status,
notes) produces an immutable RiskHistoryEntry. Entries are never mutated.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

from engines.enums import Impact, Probability, RiskLevel, RiskStatus
from engines.models import Reference, Risk, RiskHistoryEntry


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Distinguishes "leave unchanged" from an explicit None (clearing the field)
UNSET: Any = _Unset()

TRACKED_FIELDS = ("probability", "impact", "status", "notes")


@dataclass(frozen=True)
class LevelTransition:
    """Change of computed level between two consecutive snapshots"""
    recorded_at: datetime
    previous: RiskLevel
    current: RiskLevel
    actor: Optional[Reference] = None

    @property
    def is_escalation(self) -> bool:
        return self.current.rank > self.previous.rank

    @property
    def direction(self) -> str:
        return "escalated" if self.is_escalation else "de-escalated"


def snapshot(risk: Risk, actor: Optional[Reference], recorded_at: datetime) -> RiskHistoryEntry:
    return RiskHistoryEntry(
        risk_id=risk.id,
        probability=risk.probability,
        impact=risk.impact,
        level=risk.level,
        status=risk.status,
        notes=risk.notes,
        actor=actor,
        recorded_at=recorded_at,
    )


def has_meaningful_change(before: Risk, after: Risk) -> bool:
    return any(getattr(before, name) != getattr(after, name) for name in TRACKED_FIELDS)


def apply_assessment_update(risk: Risk, *, actor: Optional[Reference], now: datetime,
                            probability: Any = UNSET, impact: Any = UNSET,
                            status: Any = UNSET, notes: Any = UNSET
                            ) -> Tuple[Risk, Optional[RiskHistoryEntry]]:
    """
    Apply an assessment edit and snapshot the result.

    Returns the updated risk and its history entry. When no tracked field
    actually changes the original risk is returned with no entry. The level is
    never passed in; it follows from the new probability and impact.
    """
    changes = {}
    if probability is not UNSET:
        changes['probability'] = Probability.coerce(probability)
    if impact is not UNSET:
        changes['impact'] = Impact.coerce(impact)
    if status is not UNSET:
        resolved = RiskStatus.coerce(status)
        if resolved is None:
            raise ValueError(f"Unknown risk status: {status!r}")
        changes['status'] = resolved
    if notes is not UNSET:
        changes['notes'] = notes

    if not changes:
        return risk, None

    # replace() re-runs __post_init__, so values stay coerced
    updated = replace(risk, updated_at=now, **changes)
    if not has_meaningful_change(risk, updated):
        return risk, None

    return updated, snapshot(updated, actor, now)


def order_history(entries: Iterable[RiskHistoryEntry]) -> List[RiskHistoryEntry]:
    """Newest snapshot first"""
    return sorted(entries, key=lambda entry: entry.recorded_at, reverse=True)


def level_transitions(entries: Iterable[RiskHistoryEntry]) -> List[LevelTransition]:
    """Chronological list of level changes across a risk's snapshots"""
    chronological = sorted(entries, key=lambda entry: entry.recorded_at)
    transitions = []
    for previous, current in zip(chronological, chronological[1:]):
        if previous.level is not current.level:
            transitions.append(LevelTransition(
                recorded_at=current.recorded_at,
                previous=previous.level,
                current=current.level,
                actor=current.actor,
            ))
    return transitions
