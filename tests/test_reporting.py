"""Report aggregation for trend charts and distributions."""
from __future__ import annotations

from datetime import date, datetime

import pytest

from engines.models import Reference, RiskFilter
from engines.reporting import NO_PROJECT, ReportAggregator, mitigation_rate


@pytest.fixture()
def aggregator(now):
    return ReportAggregator(now=now)


def test_mitigation_rate_guards_empty_collections():
    assert mitigation_rate(0, 0) == 0
    assert mitigation_rate(3, 4) == 75
    assert mitigation_rate(1, 3) == 33


def test_monthly_trends_cover_trailing_twelve_months(aggregator):
    report = aggregator.build_report([])

    labels = [bucket.label for bucket in report.monthly_trends]
    assert len(labels) == 12
    assert labels[0] == "Jul/2023"
    assert labels[-1] == "Jun/2024"
    assert all(bucket.total == 0 for bucket in report.monthly_trends)


def test_monthly_trends_bucket_by_identification_date(aggregator, make_risk):
    risks = [
        make_risk(probability="Muito Alta", impact="Muito Alto", identified_on=date(2024, 6, 1)),
        make_risk(probability="Média", impact="Baixo", identified_on=date(2024, 6, 30)),
        make_risk(identified_on=date(2024, 1, 15)),
        make_risk(identified_on=None, created_at=datetime(2023, 7, 2, 9, 30)),
        make_risk(identified_on=date(2023, 6, 30)),
    ]

    report = aggregator.build_report(risks)
    buckets = {bucket.label: bucket for bucket in report.monthly_trends}

    june = buckets["Jun/2024"]
    assert (june.high, june.medium, june.low, june.total) == (1, 1, 0, 2)
    assert buckets["Jan/2024"].low == 1
    assert buckets["Jul/2023"].total == 1
    assert sum(bucket.total for bucket in report.monthly_trends) == 4
    # Risks outside the window still count everywhere else
    assert report.metrics.total == 5


def test_distributions_and_metrics(aggregator, make_risk, project):
    other = Reference(id="project-erp", name="ERP")
    risks = [
        make_risk(category="Tecnologia", probability="Alta", impact="Alto", project=project,
                  status="Mitigado"),
        make_risk(category="Tecnologia", probability="Baixa", impact="Médio", project=project,
                  status="Mitigado"),
        make_risk(category="Financeiro", probability="Muito Baixa", impact="Baixo",
                  project=other, status="Mitigado"),
        make_risk(category="Financeiro", status="Eliminado"),
    ]

    report = aggregator.build_report(risks)

    categories = {bucket.name: bucket for bucket in report.category_distribution}
    assert (categories["Tecnologia"].total, categories["Tecnologia"].high,
            categories["Tecnologia"].medium) == (2, 1, 1)
    assert categories["Financeiro"].low == 2

    statuses = {bucket.name: bucket for bucket in report.status_distribution}
    assert statuses["Mitigado"].value == 3
    assert statuses["Mitigado"].percentage == 75.0
    assert statuses["Eliminado"].percentage == 25.0

    assert [(b.name, b.value) for b in report.project_distribution] == [
        (project.name, 2), ("ERP", 1), (NO_PROJECT, 1)]

    metrics = report.metrics
    assert (metrics.total, metrics.high, metrics.medium, metrics.low) == (4, 1, 1, 2)
    assert metrics.mitigated == 3
    assert metrics.mitigation_rate == 75


def test_project_distribution_keeps_top_ten(aggregator, make_risk):
    risks = []
    for n in range(12):
        ref = Reference(id=f"project-{n}", name=f"Project {n:02d}")
        risks.extend(make_risk(project=ref) for _ in range(n + 1))

    distribution = aggregator.build_report(risks).project_distribution

    assert len(distribution) == 10
    assert distribution[0].name == "Project 11"
    assert distribution[0].value == 12


def test_filters_are_applied_first(aggregator, make_risk, project, owner):
    risks = [
        make_risk(project=project, owner=owner, category="Tecnologia",
                  identified_on=date(2024, 3, 10)),
        make_risk(project=project, category="Tecnologia", identified_on=date(2024, 3, 11)),
        make_risk(category="Tecnologia", identified_on=date(2024, 5, 1)),
    ]
    filters = RiskFilter(project_id=project.id, category="Tecnologia",
                         start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))

    report = aggregator.build_report(risks, filters)
    assert [r.id for r in report.filtered_risks] == [risks[0].id, risks[1].id]

    by_owner = aggregator.build_report(risks, RiskFilter(owner_id=owner.id))
    assert by_owner.metrics.total == 1


def test_status_percentages_round_to_one_decimal(aggregator, make_risk):
    risks = [make_risk(status="Mitigado"), make_risk(), make_risk()]
    statuses = {b.name: b.percentage for b in aggregator.build_report(risks).status_distribution}

    assert statuses == {"Mitigado": 33.3, "Identificado": 66.7}
