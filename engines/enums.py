#!/usr/bin/env python3
"""
Enumerations shared by the risk register analysis engines.
Values are the strings persisted by the risk store; every enum accepts
loosely-typed input through coerce() so callers can pass raw rows.
"""

from enum import Enum
from typing import Any, List


class _CoercibleEnum(Enum):
    """Enum that resolves members from values or names without raising"""

    @classmethod
    def coerce(cls, value: Any):
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        if not text:
            return None
        lowered = text.casefold()
        for member in cls:
            if member.value.casefold() == lowered or member.name.casefold() == lowered:
                return member
        return None


class RiskCategory(_CoercibleEnum):
    TECHNOLOGY = "Tecnologia"
    HUMAN_RESOURCES = "Recursos Humanos"
    FINANCIAL = "Financeiro"
    OPERATIONAL = "Operacional"
    COMPLIANCE = "Compliance"
    STRATEGIC = "Estratégico"
    REGULATORY = "Regulatório"


class Probability(_CoercibleEnum):
    VERY_LOW = "Muito Baixa"
    LOW = "Baixa"
    MEDIUM = "Média"
    HIGH = "Alta"
    VERY_HIGH = "Muito Alta"

    @property
    def score(self) -> int:
        return _PROBABILITY_SCORES[self]


class Impact(_CoercibleEnum):
    VERY_LOW = "Muito Baixo"
    LOW = "Baixo"
    MEDIUM = "Médio"
    HIGH = "Alto"
    VERY_HIGH = "Muito Alto"

    @property
    def score(self) -> int:
        return _IMPACT_SCORES[self]


_PROBABILITY_SCORES = {
    Probability.VERY_LOW: 1,
    Probability.LOW: 2,
    Probability.MEDIUM: 3,
    Probability.HIGH: 4,
    Probability.VERY_HIGH: 5,
}

_IMPACT_SCORES = {
    Impact.VERY_LOW: 1,
    Impact.LOW: 2,
    Impact.MEDIUM: 3,
    Impact.HIGH: 4,
    Impact.VERY_HIGH: 5,
}


class ImpactBand(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskLevel(_CoercibleEnum):
    LOW = "Baixo"
    MEDIUM = "Médio"
    HIGH = "Alto"
    CRITICAL = "Crítico"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]

    @property
    def impact_band(self) -> ImpactBand:
        """Critical and High share the high band in reports and cause clusters"""
        if self in (RiskLevel.CRITICAL, RiskLevel.HIGH):
            return ImpactBand.HIGH
        if self is RiskLevel.MEDIUM:
            return ImpactBand.MEDIUM
        return ImpactBand.LOW

    @property
    def is_priority(self) -> bool:
        return self in (RiskLevel.CRITICAL, RiskLevel.HIGH)


_LEVEL_RANKS = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}


class Strategy(_CoercibleEnum):
    MITIGATE = "Mitigar"
    ACCEPT = "Aceitar"
    TRANSFER = "Transferir"
    AVOID = "Evitar"


class RiskStatus(_CoercibleEnum):
    IDENTIFIED = "Identificado"
    UNDER_ANALYSIS = "Em Análise"
    MONITORING = "Em Monitoramento"
    IN_PROGRESS = "Em Andamento"
    MITIGATED = "Mitigado"
    ACCEPTED = "Aceito"
    TRANSFERRED = "Transferido"
    ELIMINATED = "Eliminado"
    # Sentinel for risks pre-populated by the AI assistant and not yet reviewed
    AI_POPULATED = "IA"

    @property
    def is_ai_populated(self) -> bool:
        return self is RiskStatus.AI_POPULATED

    @property
    def is_resolved(self) -> bool:
        return self in (RiskStatus.MITIGATED, RiskStatus.ELIMINATED)

    @property
    def is_in_treatment(self) -> bool:
        return self in (RiskStatus.IN_PROGRESS, RiskStatus.MONITORING)

    @property
    def mitigation_progress(self) -> float:
        return _MITIGATION_PROGRESS.get(self, 0.0)

    @classmethod
    def user_statuses(cls) -> List["RiskStatus"]:
        return [status for status in cls if not status.is_ai_populated]


_MITIGATION_PROGRESS = {
    RiskStatus.IDENTIFIED: 0.1,
    RiskStatus.UNDER_ANALYSIS: 0.2,
    RiskStatus.IN_PROGRESS: 0.5,
    RiskStatus.MONITORING: 0.8,
    RiskStatus.MITIGATED: 1.0,
    RiskStatus.ELIMINATED: 1.0,
}


