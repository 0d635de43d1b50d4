"""Narrative project health analysis."""
from __future__ import annotations

from datetime import timedelta

import pytest

from engines.models import Reference, RiskFilter
from engines.narrative_analysis import (
    AnalysisState,
    IssueSeverity,
    NarrativeAnalysisGenerator,
)

DETAILED_PLAN = ("Contratar consultoria especializada, revisar a arquitetura de integração, "
                 "criar testes automatizados de regressão e monitorar diariamente os "
                 "indicadores de falha com alertas para a equipe de plantão.")


@pytest.fixture()
def generator(now):
    return NarrativeAnalysisGenerator(now=now)


def test_empty_portfolio_returns_welcome_state(generator):
    analysis = generator.generate_complete_analysis([])

    assert analysis.state is AnalysisState.WELCOME
    assert analysis.is_welcome
    assert analysis.health_score is None
    assert analysis.score_band is None
    assert analysis.critical_issues == []
    assert analysis.recommendations.urgent
    assert "first risk" in analysis.executive_summary


def test_filter_without_matches_returns_welcome_with_project_name(generator, make_risk, project):
    risks = [make_risk(project=project)]
    risk_filter = RiskFilter(project_id="project-other", project_name="Portal do Cliente")

    analysis = generator.generate_complete_analysis(risks, risk_filter)

    assert analysis.is_welcome
    assert 'Project "Portal do Cliente"' in analysis.executive_summary


def test_issues_are_ranked_by_severity_and_capped(generator, make_risk, owner, today):
    risks = [
        make_risk(probability="Muito Alta", impact="Muito Alto", status="IA",
                  mitigation_actions="Rever"),
        make_risk(probability="Alta", impact="Médio", owner=owner, strategy="Aceitar",
                  deadline=today - timedelta(days=3),
                  identified_on=today - timedelta(days=100)),
    ]

    analysis = generator.generate_complete_analysis(risks)
    severities = [issue.severity for issue in analysis.critical_issues]

    assert analysis.state is AnalysisState.ANALYSED
    assert len(analysis.critical_issues) == NarrativeAnalysisGenerator.MAX_ISSUES
    assert severities[0] is IssueSeverity.CRITICAL
    assert [s.rank for s in severities] == sorted(s.rank for s in severities)
    assert any("without an assigned owner" in issue.text for issue in analysis.critical_issues)
    assert any("past the mitigation deadline" in issue.text
               for issue in analysis.critical_issues)
    assert any("more than 60 days ago" in issue.text for issue in analysis.critical_issues)


def test_ai_populated_risks_are_flagged_for_review(generator, make_risk, owner):
    analysis = generator.generate_complete_analysis(
        [make_risk(probability="Baixa", impact="Muito Baixo", owner=owner, status="IA")])

    texts = [issue.text for issue in analysis.critical_issues]
    assert texts == ["1 AI-populated risk awaiting human review"]
    assert analysis.critical_issues[0].severity is IssueSeverity.MEDIUM
    assert any("AI-populated" in item for item in analysis.recommendations.short_term)


def test_overloaded_owner_is_reported(make_risk, owner, now):
    generator = NarrativeAnalysisGenerator(overload_threshold=2, now=now)
    risks = [make_risk(owner=owner) for _ in range(3)]

    analysis = generator.generate_complete_analysis(risks)

    assert any("overloaded" in issue.text and "Ana Souza" in issue.text
               for issue in analysis.critical_issues)
    assert any("Ana Souza (3)" in item for item in analysis.recommendations.medium_term)


def test_well_managed_portfolio_has_strengths(generator, make_risk, today):
    owners = [Reference(id=f"user-{n}", name=f"Owner {n}") for n in range(3)]
    risks = [
        make_risk(probability="Média", impact="Médio", owner=owners[n % 3],
                  deadline=today + timedelta(days=20), status=status, strategy="Mitigar",
                  mitigation_actions=DETAILED_PLAN, contingency_actions=DETAILED_PLAN)
        for n, status in enumerate(["Mitigado", "Em Monitoramento", "Em Monitoramento",
                                    "Em Andamento", "Mitigado"])
    ]

    analysis = generator.generate_complete_analysis(risks)

    assert analysis.critical_issues == []
    assert 0 < len(analysis.strengths) <= NarrativeAnalysisGenerator.MAX_STRENGTHS
    assert analysis.score_band.label == "Excellent"
    assert "excellent condition" in analysis.executive_summary
    assert any("effectively mitigated" in strength.text for strength in analysis.strengths)


def test_recommendation_tiers_are_capped(generator, make_risk, today):
    risks = [make_risk(probability="Muito Alta", impact="Muito Alto", code=f"BID-R-{n:03d}",
                       mitigation_actions="Plano curto e genérico de resposta ao risco")
             for n in range(1, 6)]
    risks += [make_risk(probability="Alta", impact="Médio", deadline=today - timedelta(days=2))]

    plan = generator.generate_complete_analysis(risks).recommendations

    for tier in (plan.urgent, plan.short_term, plan.medium_term, plan.continuous):
        assert len(tier) <= NarrativeAnalysisGenerator.MAX_RECOMMENDATIONS_PER_TIER
    assert "BID-R-001, BID-R-002, BID-R-003 and 2 others" in plan.urgent[1]


def test_executive_summary_uses_filtered_project(generator, make_risk, project):
    risks = [make_risk(project=project), make_risk()]
    risk_filter = RiskFilter(project_id=project.id, project_name=project.name)

    analysis = generator.generate_complete_analysis(risks, risk_filter)

    assert analysis.executive_summary.startswith(f'Project "{project.name}"')
    assert "1 mapped risk," in analysis.executive_summary
    assert f"Score: {analysis.health_score}/100" in analysis.executive_summary


def test_plan_detail_recommendation_quotes_configured_minimum(make_risk, now):
    generator = NarrativeAnalysisGenerator(detailed_plan_min_chars=200, now=now)
    risk = make_risk(probability="Muito Alta", impact="Muito Alto",
                     mitigation_actions="Plano curto de resposta")

    analysis = generator.generate_complete_analysis([risk])

    assert any("(minimum 200 characters)" in issue.text for issue in analysis.critical_issues)
    assert any(item.startswith("Detail action plans (min. 200 characters)")
               for item in analysis.recommendations.urgent)


def test_monitored_risks_get_monthly_follow_up(generator, make_risk, owner):
    risks = [make_risk(owner=owner, status="Em Monitoramento"), make_risk(owner=owner)]

    continuous = generator.generate_complete_analysis(risks).recommendations.continuous

    assert continuous[0] == "Hold monthly follow-ups on risks under monitoring"
    assert len(continuous) == NarrativeAnalysisGenerator.MAX_RECOMMENDATIONS_PER_TIER
