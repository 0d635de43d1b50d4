"""Risk code generation."""
from __future__ import annotations

from datetime import datetime

import pytest

from engines.risk_codes import (
    generate_project_acronym,
    generate_unique_risk_code,
    next_risk_sequential,
)


@pytest.mark.parametrize(
    "name, acronym",
    [
        ("Banco de Investimento Digital", "BDID"),
        ("Banco Mundial", "BM"),
        ("plataforma   de dados abertos municipais", "PDDA"),
        ("", ""),
        (None, ""),
    ],
)
def test_generate_project_acronym(name, acronym):
    assert generate_project_acronym(name) == acronym


def test_next_risk_sequential():
    assert next_risk_sequential([]) == 1
    assert next_risk_sequential(["BM-R-001", "BM-R-007", "legacy-42", None]) == 8
    assert next_risk_sequential(["BM-R-000"]) == 1


def test_generate_unique_risk_code_uses_next_free_number():
    assert generate_unique_risk_code("Banco Mundial", []) == "BM-R-001"
    assert generate_unique_risk_code("Banco Mundial", ["BM-R-001", "BM-R-002"]) == "BM-R-003"
    assert generate_unique_risk_code("Banco Mundial", ["XP-R-010"]) == "BM-R-001"


def test_generate_unique_risk_code_requires_a_name():
    assert generate_unique_risk_code("", ["BM-R-001"]) == ""


def test_falls_back_to_timestamp_when_attempts_are_exhausted(monkeypatch):
    import engines.risk_codes as risk_codes

    monkeypatch.setattr(risk_codes, "next_risk_sequential", lambda codes: 1)
    clock = lambda: datetime.fromtimestamp(1718452800.123456)
    taken = [f"BM-R-{n:03d}" for n in range(1, 4)]

    code = generate_unique_risk_code("Banco Mundial", taken, max_attempts=3, now=clock)

    expected_suffix = str(int(clock().timestamp() * 1000))[-6:]
    assert code == f"BM-R-{expected_suffix}"
