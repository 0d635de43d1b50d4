"""Orchestration of the analysis engines over the SQLite risk store."""
from __future__ import annotations

import asyncio

import pytest

from core.config import AppConfig
from engines.enums import RiskLevel, RiskStatus
from engines.models import Cause, RiskFilter
from engines.narrative_analysis import AnalysisState
from services.analysis_service import RiskAnalysisService


@pytest.fixture()
def service(store, now):
    config = AppConfig(DUPLICATE_CAUSE_THRESHOLD=0.85, SIMILARITY_SUGGEST_THRESHOLD=0.6)
    return RiskAnalysisService(store, config=config, now=now)


@pytest.fixture()
def seeded(store, make_risk, project, owner):
    risks = [
        store.add_risk(make_risk(probability="Muito Alta", impact="Alto", project=project,
                                 owner=owner, causes_text="Falha no sistema de integração")),
        store.add_risk(make_risk(probability="Baixa", impact="Baixo", project=project,
                                 causes_text="Falha no sistema de integração")),
        store.add_risk(make_risk(probability="Média", impact="Médio",
                                 causes_text="Atraso do fornecedor")),
    ]
    store.add_causes([
        Cause(id=None, risk_id=risks[0].id, description="Falha no sistema de integração",
              category="Tecnologia"),
        Cause(id=None, risk_id=risks[1].id, description="Falha no sistema de integração",
              category="Tecnologia"),
        Cause(id=None, risk_id=risks[2].id, description="Atraso do fornecedor",
              category="Operacional"),
    ])
    return risks


def test_common_causes_and_suggestions(service, seeded):
    clusters = service.common_causes()
    assert [c.frequency for c in clusters] == [2, 1]
    assert clusters[0].description == "Falha no sistema de integração"

    suggestions = service.similar_causes("falha no sistema de integracao")
    assert suggestions[0].description == "Falha no sistema de integração"
    assert suggestions[0].category == "Tecnologia"

    assert service.is_duplicate("FALHA no sistema de integracao")
    assert not service.is_duplicate("Chuva forte")

    assert [c.key for c in service.common_causes(search="fornecedor")] == ["atraso do fornecedor"]


def test_edit_and_delete_cause_cluster(service, seeded, store):
    cluster = service.common_causes()[0]

    result = asyncio.run(service.edit_cause_cluster(cluster, description="Instabilidade do ERP"))
    assert result.succeeded_count == 2
    assert result.is_success

    result = asyncio.run(service.delete_cause_cluster("instabilidade do erp"))
    assert result.succeeded_count == 2
    assert [c.description for c in store.list_causes()] == ["Atraso do fornecedor"]


def test_project_health_and_report(service, seeded, project):
    health = service.project_health(RiskFilter(project_id=project.id,
                                               project_name=project.name))
    assert health.state is AnalysisState.ANALYSED
    assert project.name in health.executive_summary

    report = service.report()
    assert report.metrics.total == 3
    assert report.metrics.high == 2


def test_consistency_issues(service, seeded, store, make_risk):
    orphan_parent = store.add_risk(make_risk())
    store.add_cause(Cause(id=None, risk_id=orphan_parent.id, description="Sem texto legado"))

    report = service.consistency_issues()
    assert any(issue.risk_id == orphan_parent.id for issue in report.issues)


def test_update_assessment_persists_risk_and_history(service, seeded, store, owner):
    risk = seeded[1]

    updated, entry = service.update_assessment(risk.id, actor=owner,
                                               probability="Muito Alta", impact="Muito Alto",
                                               status="Em Andamento")

    assert updated.level is RiskLevel.CRITICAL
    assert store.get_risk(risk.id).status is RiskStatus.IN_PROGRESS
    assert store.list_history(risk.id) == [entry]
    assert entry.actor == owner

    unchanged, no_entry = service.update_assessment(risk.id, status="Em Andamento")
    assert no_entry is None
    assert len(store.list_history(risk.id)) == 1


def test_update_assessment_for_unknown_risk(service):
    with pytest.raises(KeyError):
        service.update_assessment("missing", status="Mitigado")


def test_stored_causes_feed_the_trend_score(service, seeded, store):
    stamps = {cause.created_at for cause in store.list_causes()}
    assert stamps == {service.now()}

    clusters = service.common_causes()
    assert clusters[0].trend_score == 3.0
    assert clusters[0].trend_label == "increasing"
    assert clusters[1].trend_score == 2.0
