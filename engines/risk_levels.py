#!/usr/bin/env python3
"""
Risk level calculation from the probability x impact matrix.
Both axes map to ordinals 1-5; their product (1-25) is bucketed into four levels.
"""

from typing import Any

from engines.enums import Impact, Probability, RiskLevel

# Inclusive lower bounds of each level, highest first
LEVEL_THRESHOLDS = (
    (16, RiskLevel.CRITICAL),
    (9, RiskLevel.HIGH),
    (4, RiskLevel.MEDIUM),
)


def probability_score(probability: Any) -> int:
    """Ordinal 1-5 for a probability, 0 when unset or unknown"""
    resolved = Probability.coerce(probability)
    return resolved.score if resolved else 0


def impact_score(impact: Any) -> int:
    """Ordinal 1-5 for an impact, 0 when unset or unknown"""
    resolved = Impact.coerce(impact)
    return resolved.score if resolved else 0


def risk_score(probability: Any, impact: Any) -> int:
    """Raw matrix score (1-25); 0 when either axis is unset"""
    return probability_score(probability) * impact_score(impact)


def calculate_risk_level(probability: Any, impact: Any) -> RiskLevel:
    """
    Map a (probability, impact) pair to its risk level.
    An unset or unrecognised value on either axis yields LOW rather than an error.
    """
    score = risk_score(probability, impact)
    if score == 0:
        return RiskLevel.LOW

    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return RiskLevel.LOW
