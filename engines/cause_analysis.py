#!/usr/bin/env python3
"""
Common Cause Analysis for the risk register
Groups cause rows with identical normalized text into clusters, scores each
cluster from frequency, severity, trend and spread across categories, and
applies cluster-wide edits or deletions against the risk store.
"""

import asyncio
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Union

import numpy as np

from core.logging import get_logger
from engines.enums import ImpactBand
from engines.models import Cause, CauseCluster, Risk
from engines.risk_levels import risk_score
from engines.text_similarity import split_legacy_causes, suggest_category

logger = get_logger(__name__)


def _comparable(stamp: datetime, now: datetime) -> datetime:
    """Align stamp with now's awareness; naive values are taken as local time"""
    if (stamp.tzinfo is None) == (now.tzinfo is None):
        return stamp
    if now.tzinfo is None:
        return stamp.astimezone().replace(tzinfo=None)
    return stamp.astimezone(now.tzinfo)


def cause_key(text: Optional[str]) -> str:
    """Clustering key: case-insensitive, whitespace-collapsed description"""
    if not text:
        return ""
    return " ".join(text.split()).casefold()


class CauseStore(Protocol):
    """Point operations on cause rows offered by the risk store"""

    async def update_cause(self, cause_id: str, *, description: str,
                           category: Optional[str]) -> None:
        ...

    async def delete_cause(self, cause_id: str) -> None:
        ...


@dataclass
class BatchOperationResult:
    """Outcome of a cluster-wide edit or delete, one entry per cause row"""
    operation: str
    cluster_key: str
    attempted: int = 0
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def is_success(self) -> bool:
        return not self.failed

    @property
    def is_partial_failure(self) -> bool:
        return bool(self.failed) and bool(self.succeeded)

    def raise_for_failures(self) -> "BatchOperationResult":
        if self.failed:
            raise CauseBatchError(self)
        return self


class CauseBatchError(RuntimeError):
    """Raised when at least one row of a cluster-wide operation failed"""

    def __init__(self, result: BatchOperationResult):
        self.result = result
        super().__init__(
            f"{result.operation} of cause cluster '{result.cluster_key}' failed for "
            f"{result.failed_count} of {result.attempted} rows"
        )


class CauseAggregator:
    """
    Aggregates cause rows into scored clusters.
    All scores are recomputed from scratch on every call; nothing is cached.
    """

    # Final score weights (sum to 1.0)
    SCORE_WEIGHTS = {
        'impact': 0.35,
        'criticality': 0.30,
        'frequency': 0.25,
        'trend': 0.05,
        'complexity': 0.05,
    }

    # Scale maxima used to normalise each component before weighting
    IMPACT_MAX = 5.0
    CRITICALITY_MAX = 25.0
    TREND_MAX = 3.0
    COMPLEXITY_MAX = 2.0
    FINAL_SCALE = 10.0

    BAND_WEIGHTS = {
        ImpactBand.HIGH: 5.0,
        ImpactBand.MEDIUM: 3.0,
        ImpactBand.LOW: 1.0,
    }

    COMPLEXITY_PER_CATEGORY = 0.5
    RELIABLE_FREQUENCY = 3

    def __init__(self, trend_window_days: int = 90,
                 now: Optional[Callable[[], datetime]] = None):
        self.trend_window = timedelta(days=trend_window_days)
        self.now = now or datetime.now

    def aggregate(self, risks: Iterable[Risk], causes: Iterable[Cause]) -> List[CauseCluster]:
        """Build clusters ordered by final score, then frequency, then key"""
        risks_by_id = {risk.id: risk for risk in risks}

        groups: "OrderedDict[str, List[Cause]]" = OrderedDict()
        for cause in causes:
            key = cause_key(cause.description)
            if not key:
                continue
            groups.setdefault(key, []).append(cause)

        if not groups:
            return []

        now = self.now()
        clusters = [self._build_cluster(key, rows, risks_by_id, now)
                    for key, rows in groups.items()]

        max_frequency = max(cluster.frequency for cluster in clusters)
        for cluster in clusters:
            cluster.frequency_score = cluster.frequency / max_frequency
            cluster.final_score = self._final_score(cluster)

        clusters.sort(key=lambda c: (-c.final_score, -c.frequency, c.key))
        logger.debug("cause_clusters_aggregated", clusters=len(clusters),
                     cause_rows=sum(c.frequency for c in clusters))
        return clusters

    def _build_cluster(self, key: str, rows: List[Cause], risks_by_id: Dict[str, Risk],
                       now: datetime) -> CauseCluster:
        spellings = Counter(row.description.strip() for row in rows)
        # most_common keeps first-seen order among ties
        canonical = spellings.most_common(1)[0][0]

        risk_ids = list(OrderedDict.fromkeys(row.risk_id for row in rows))
        linked = [risks_by_id[risk_id] for risk_id in risk_ids if risk_id in risks_by_id]
        categories = sorted({row.category for row in rows if row.category})

        bands = Counter(risk.level.impact_band for risk in linked)

        cluster = CauseCluster(
            description=canonical,
            key=key,
            frequency=len(rows),
            cause_ids=[row.id for row in rows if row.id],
            risk_ids=risk_ids,
            categories=categories,
            high_impact_risks=bands[ImpactBand.HIGH],
            medium_impact_risks=bands[ImpactBand.MEDIUM],
            low_impact_risks=bands[ImpactBand.LOW],
        )
        cluster.impact_score = self._impact_score(bands)
        cluster.criticality_score = self._criticality_score(linked)
        cluster.trend_score = self._trend_score(rows, now)
        cluster.complexity_score = min(self.COMPLEXITY_MAX,
                                       self.COMPLEXITY_PER_CATEGORY * len(categories))
        cluster.reliability_score = self._reliability_score(len(rows), linked)
        return cluster

    def _impact_score(self, bands: Counter) -> float:
        total = sum(bands.values())
        if total == 0:
            return 0.0
        weighted = sum(self.BAND_WEIGHTS[band] * count for band, count in bands.items())
        return weighted / total

    def _criticality_score(self, linked: List[Risk]) -> float:
        if not linked:
            return 0.0
        return float(np.mean([risk_score(risk.probability, risk.impact) for risk in linked]))

    def _trend_score(self, rows: List[Cause], now: datetime) -> float:
        """Ratio of rows created in the latest window to the one before, capped at 3"""
        stamps = [_comparable(row.created_at, now) for row in rows if row.created_at]
        if not stamps:
            return 1.0

        recent_start = now - self.trend_window
        prior_start = recent_start - self.trend_window
        recent = sum(1 for stamp in stamps if recent_start < stamp <= now)
        prior = sum(1 for stamp in stamps if prior_start < stamp <= recent_start)
        return min(self.TREND_MAX, (recent + 1) / (prior + 1))

    def _reliability_score(self, frequency: int, linked: List[Risk]) -> float:
        volume = min(1.0, frequency / self.RELIABLE_FREQUENCY)
        if linked:
            assessed = sum(1 for risk in linked if risk.probability and risk.impact) / len(linked)
        else:
            assessed = 0.0
        return 0.5 * volume + 0.5 * assessed

    def _final_score(self, cluster: CauseCluster) -> float:
        weights = self.SCORE_WEIGHTS
        composite = (
            weights['impact'] * cluster.impact_score / self.IMPACT_MAX
            + weights['criticality'] * cluster.criticality_score / self.CRITICALITY_MAX
            + weights['frequency'] * cluster.frequency_score
            + weights['trend'] * cluster.trend_score / self.TREND_MAX
            + weights['complexity'] * cluster.complexity_score / self.COMPLEXITY_MAX
        )
        return round(self.FINAL_SCALE * composite, 2)


SORT_KEYS = {
    'score_final': lambda c: -c.final_score,
    'frequency': lambda c: -c.frequency,
    'impact': lambda c: -c.impact_score,
    'criticality': lambda c: -c.criticality_score,
    'reliability': lambda c: -c.reliability_score,
    'alphabetical': lambda c: c.key,
}


def filter_clusters(clusters: Sequence[CauseCluster], search: Optional[str] = None,
                    category: Optional[str] = None,
                    sort_by: str = 'score_final') -> List[CauseCluster]:
    """Search/category filtering and re-sorting as offered by the analysis view"""
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_by}")

    needle = cause_key(search)
    selected = [
        cluster for cluster in clusters
        if (not needle or needle in cluster.key)
        and (not category or category in cluster.categories)
    ]
    return sorted(selected, key=SORT_KEYS[sort_by])


def summarize_clusters(clusters: Sequence[CauseCluster]) -> Dict[str, float]:
    if not clusters:
        return {
            'total': 0,
            'total_frequency': 0,
            'average_impact': 0.0,
            'average_score': 0.0,
            'average_reliability': 0.0,
            'categories': 0,
        }

    categories = {category for cluster in clusters for category in cluster.categories}
    return {
        'total': len(clusters),
        'total_frequency': sum(cluster.frequency for cluster in clusters),
        'average_impact': float(np.mean([cluster.impact_score for cluster in clusters])),
        'average_score': float(np.mean([cluster.final_score for cluster in clusters])),
        'average_reliability': float(np.mean([cluster.reliability_score for cluster in clusters])),
        'categories': len(categories),
    }


def causes_from_legacy_text(risk: Risk) -> List[Cause]:
    """Unsaved cause rows derived from a risk's legacy free-text field"""
    drafts = []
    for description in split_legacy_causes(risk.causes_text):
        category = suggest_category(description)
        drafts.append(Cause(
            id=None,
            risk_id=risk.id,
            description=description,
            category=category.value if category else None,
        ))
    return drafts


def matching_causes(causes: Iterable[Cause], canonical: Union[str, CauseCluster]) -> List[Cause]:
    """Persisted rows whose normalized description equals the cluster's"""
    key = canonical.key if isinstance(canonical, CauseCluster) else cause_key(canonical)
    return [cause for cause in causes if cause.id and cause_key(cause.description) == key]


async def _run_batch(operation: str, key: str, rows: List[Cause], action) -> BatchOperationResult:
    result = BatchOperationResult(operation=operation, cluster_key=key, attempted=len(rows))
    outcomes = await asyncio.gather(*(action(row) for row in rows), return_exceptions=True)

    for row, outcome in zip(rows, outcomes):
        if isinstance(outcome, Exception):
            result.failed[row.id] = str(outcome) or outcome.__class__.__name__
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            result.succeeded.append(row.id)

    if result.failed:
        logger.warning("cause_cluster_batch_failed", operation=operation, cluster=key,
                       attempted=result.attempted, succeeded=result.succeeded_count,
                       failed=result.failed_count)
    else:
        logger.info("cause_cluster_batch_completed", operation=operation, cluster=key,
                    updated=result.succeeded_count)
    return result


async def update_cluster(store: CauseStore, causes: Iterable[Cause],
                         canonical: Union[str, CauseCluster], *, description: str,
                         category: Optional[str] = None) -> BatchOperationResult:
    """Rewrite every row of a cluster; all outcomes are collected before returning"""
    new_description = (description or "").strip()
    if not new_description:
        raise ValueError("Cause description cannot be empty")

    rows = matching_causes(causes, canonical)
    key = canonical.key if isinstance(canonical, CauseCluster) else cause_key(canonical)

    async def _update(row: Cause) -> None:
        await store.update_cause(row.id, description=new_description, category=category)

    return await _run_batch('update', key, rows, _update)


async def delete_cluster(store: CauseStore, causes: Iterable[Cause],
                         canonical: Union[str, CauseCluster]) -> BatchOperationResult:
    """Delete every row of a cluster; all outcomes are collected before returning"""
    rows = matching_causes(causes, canonical)
    key = canonical.key if isinstance(canonical, CauseCluster) else cause_key(canonical)

    async def _delete(row: Cause) -> None:
        await store.delete_cause(row.id)

    return await _run_batch('delete', key, rows, _delete)
