#!/usr/bin/env python3
"""
Risk Analysis Service
Wires the analysis engines to a risk store and the application configuration.
Engines stay pure; this layer loads data, passes thresholds in, binds logging
context and persists assessment changes with their history snapshots.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, List, Optional, Protocol, Tuple, Union

from core.config import AppConfig, get_config
from core.logging import bind_analysis_context, clear_analysis_context, get_logger
from engines.cause_analysis import (
    BatchOperationResult,
    CauseAggregator,
    CauseStore,
    delete_cluster,
    filter_clusters,
    update_cluster,
)
from engines.cause_consistency import ConsistencyReport, validate_consistency
from engines.models import Cause, CauseCluster, Reference, Risk, RiskFilter, RiskHistoryEntry
from engines.narrative_analysis import NarrativeAnalysis, NarrativeAnalysisGenerator
from engines.reporting import ReportAggregator, RiskReport
from engines.risk_history import UNSET, apply_assessment_update
from engines.text_similarity import SimilarCause, TextSimilarityEngine

logger = get_logger(__name__)


class RiskStore(CauseStore, Protocol):
    """Reads and risk persistence needed on top of the cause point operations"""

    def list_risks(self) -> List[Risk]:
        ...

    def list_causes(self) -> List[Cause]:
        ...

    def get_risk(self, risk_id: str) -> Risk:
        ...

    def save_risk(self, risk: Risk) -> Risk:
        ...

    def record_history(self, entry: RiskHistoryEntry) -> RiskHistoryEntry:
        ...


class RiskAnalysisService:
    """Entry point for callers that hold a store rather than in-memory collections"""

    def __init__(self, store: RiskStore, config: Optional[AppConfig] = None,
                 now: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.config = config or get_config()
        self.now = now or datetime.now

        settings = self.config.analysis
        self.similarity = TextSimilarityEngine(
            suggest_threshold=settings.similarity_suggest_threshold,
            duplicate_threshold=settings.duplicate_cause_threshold,
        )
        self.aggregator = CauseAggregator(trend_window_days=settings.cause_trend_window_days,
                                          now=self.now)
        self.narrative = NarrativeAnalysisGenerator(
            stale_after_days=settings.stale_risk_days,
            overload_threshold=settings.owner_overload_threshold,
            now=self.now,
        )
        self.reports = ReportAggregator(now=self.now)

    # Common causes

    def common_causes(self, search: Optional[str] = None, category: Optional[str] = None,
                      sort_by: str = 'score_final') -> List[CauseCluster]:
        clusters = self.aggregator.aggregate(self.store.list_risks(), self.store.list_causes())
        if search or category or sort_by != 'score_final':
            return filter_clusters(clusters, search=search, category=category, sort_by=sort_by)
        return clusters

    def similar_causes(self, text: str) -> List[SimilarCause]:
        """Existing clusters resembling text, for suggestions while typing"""
        clusters = self.aggregator.aggregate(self.store.list_risks(), self.store.list_causes())
        return self.similarity.find_similar_causes(text, clusters)

    def is_duplicate(self, text: str) -> bool:
        return self.similarity.is_duplicate_cause(text, self.store.list_causes())

    async def edit_cause_cluster(self, canonical: Union[str, CauseCluster], *,
                                 description: str,
                                 category: Optional[str] = None) -> BatchOperationResult:
        run_id = uuid.uuid4().hex
        bind_analysis_context(run_id=run_id, operation='edit_cause_cluster')
        try:
            return await update_cluster(self.store, self.store.list_causes(), canonical,
                                        description=description, category=category)
        finally:
            clear_analysis_context('run_id', 'operation')

    async def delete_cause_cluster(self, canonical: Union[str, CauseCluster]
                                   ) -> BatchOperationResult:
        run_id = uuid.uuid4().hex
        bind_analysis_context(run_id=run_id, operation='delete_cause_cluster')
        try:
            return await delete_cluster(self.store, self.store.list_causes(), canonical)
        finally:
            clear_analysis_context('run_id', 'operation')

    # Portfolio views

    def project_health(self, risk_filter: Optional[RiskFilter] = None) -> NarrativeAnalysis:
        project = (risk_filter.project_name or risk_filter.project_id) if risk_filter else None
        bind_analysis_context(project=project)
        try:
            analysis = self.narrative.generate_complete_analysis(self.store.list_risks(),
                                                                 risk_filter)
            logger.info("project_health_generated", state=analysis.state.value,
                        score=analysis.health_score)
            return analysis
        finally:
            clear_analysis_context('project')

    def report(self, filters: Optional[RiskFilter] = None) -> RiskReport:
        return self.reports.build_report(self.store.list_risks(), filters)

    def consistency_issues(self) -> ConsistencyReport:
        report = validate_consistency(self.store.list_risks(), self.store.list_causes())
        if report.has_high_severity:
            logger.warning("cause_consistency_issues", **report.counts)
        return report

    # Assessment updates

    def update_assessment(self, risk_id: str, *, actor: Optional[Reference] = None,
                          probability: Any = UNSET, impact: Any = UNSET,
                          status: Any = UNSET, notes: Any = UNSET
                          ) -> Tuple[Risk, Optional[RiskHistoryEntry]]:
        """Persist an assessment edit together with its history entry.

        Raises KeyError for an unknown risk. Returns the stored entry, or None
        when nothing tracked changed (no write happens in that case).
        """
        risk = self.store.get_risk(risk_id)
        updated, entry = apply_assessment_update(
            risk, actor=actor, now=self.now(),
            probability=probability, impact=impact, status=status, notes=notes,
        )
        if entry is None:
            return risk, None

        self.store.save_risk(updated)
        stored = self.store.record_history(entry)
        if updated.level is not risk.level:
            logger.info("risk_level_changed", risk_id=risk_id, previous=risk.level.value,
                        current=updated.level.value)
        return updated, stored
