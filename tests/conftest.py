"""Shared pytest fixtures for the risk analysis tests."""
from __future__ import annotations

import itertools
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Generator

import pytest

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from core.config import get_config
from database.risk_store import SqliteRiskStore
from engines.models import Cause, Reference, Risk


FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0)
FIXED_TODAY = FIXED_NOW.date()


@pytest.fixture()
def now() -> Callable[[], datetime]:
    """Clock frozen at 2024-06-15 12:00."""

    return lambda: FIXED_NOW


@pytest.fixture()
def today() -> date:
    return FIXED_TODAY


@pytest.fixture()
def make_risk() -> Callable[..., Risk]:
    """Build risks with sequential ids and codes; keyword arguments override fields."""

    counter = itertools.count(1)

    def _make(**overrides) -> Risk:
        number = next(counter)
        fields = {
            "id": f"risk-{number}",
            "code": f"PRJ-R-{number:03d}",
            "description": f"Risk number {number}",
            "identified_on": FIXED_TODAY,
            "created_at": FIXED_NOW,
        }
        fields.update(overrides)
        return Risk(**fields)

    return _make


@pytest.fixture()
def make_cause() -> Callable[..., Cause]:
    counter = itertools.count(1)

    def _make(risk_id: str, description: str, **overrides) -> Cause:
        fields = {
            "id": f"cause-{next(counter)}",
            "risk_id": risk_id,
            "description": description,
        }
        fields.update(overrides)
        return Cause(**fields)

    return _make


@pytest.fixture()
def owner() -> Reference:
    return Reference(id="user-ana", name="Ana Souza")


@pytest.fixture()
def project() -> Reference:
    return Reference(id="project-bid", name="Banco de Investimento Digital")


@pytest.fixture()
def isolated_config(monkeypatch, tmp_path):
    """Point configuration at a per-test SQLite file."""

    get_config.cache_clear()
    db_url = f"sqlite:///{tmp_path / 'risk_register.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    yield get_config()
    get_config.cache_clear()


@pytest.fixture()
def store(isolated_config, now) -> Generator[SqliteRiskStore, None, None]:
    """Risk store backed by an empty temporary database, on the frozen clock."""

    risk_store = SqliteRiskStore.open(isolated_config.database_url, now=now)
    try:
        yield risk_store
    finally:
        risk_store.close()
