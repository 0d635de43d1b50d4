"""SQLite implementation of the risk store collaborator."""
from __future__ import annotations

import sqlite3
import uuid
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

from core.logging import get_logger
from database.init_db import init_database
from engines.enums import Impact, Probability, RiskLevel, RiskStatus
from engines.models import Cause, Reference, Risk, RiskHistoryEntry
from engines.risk_history import order_history


logger = get_logger(__name__)


_RISK_COLUMNS = (
    "id", "code", "description", "category", "probability", "impact", "level", "status",
    "strategy", "causes_text", "consequences", "mitigation_actions", "contingency_actions",
    "owner_id", "owner_name", "project_id", "project_name", "creator_id", "creator_name",
    "deadline", "notes", "identified_on", "created_at", "updated_at",
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _enum_value(member) -> Optional[str]:
    return member.value if member is not None else None


def _reference(ref_id: Optional[str], name: Optional[str]) -> Optional[Reference]:
    return Reference(id=ref_id, name=name) if ref_id else None


def _risk_to_row(risk: Risk) -> dict:
    return {
        "id": risk.id,
        "code": risk.code,
        "description": risk.description,
        "category": _enum_value(risk.category),
        "probability": _enum_value(risk.probability),
        "impact": _enum_value(risk.impact),
        "level": risk.level.value,
        "status": risk.status.value,
        "strategy": _enum_value(risk.strategy),
        "causes_text": risk.causes_text,
        "consequences": risk.consequences,
        "mitigation_actions": risk.mitigation_actions,
        "contingency_actions": risk.contingency_actions,
        "owner_id": risk.owner.id if risk.owner else None,
        "owner_name": risk.owner.name if risk.owner else None,
        "project_id": risk.project.id if risk.project else None,
        "project_name": risk.project.name if risk.project else None,
        "creator_id": risk.creator.id if risk.creator else None,
        "creator_name": risk.creator.name if risk.creator else None,
        "deadline": _iso(risk.deadline),
        "notes": risk.notes,
        "identified_on": _iso(risk.identified_on),
        "created_at": _iso(risk.created_at),
        "updated_at": _iso(risk.updated_at),
    }


def _row_to_risk(row: sqlite3.Row) -> Risk:
    # The stored level column is informational; Risk.level is always recomputed
    return Risk(
        id=row["id"],
        code=row["code"],
        description=row["description"],
        category=row["category"],
        probability=row["probability"],
        impact=row["impact"],
        status=row["status"],
        strategy=row["strategy"],
        causes_text=row["causes_text"],
        consequences=row["consequences"],
        mitigation_actions=row["mitigation_actions"],
        contingency_actions=row["contingency_actions"],
        owner=_reference(row["owner_id"], row["owner_name"]),
        project=_reference(row["project_id"], row["project_name"]),
        creator=_reference(row["creator_id"], row["creator_name"]),
        deadline=_parse_date(row["deadline"]),
        notes=row["notes"],
        identified_on=_parse_date(row["identified_on"]),
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _row_to_cause(row: sqlite3.Row) -> Cause:
    return Cause(
        id=row["id"],
        risk_id=row["risk_id"],
        description=row["description"],
        category=row["category"],
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _row_to_history(row: sqlite3.Row) -> RiskHistoryEntry:
    return RiskHistoryEntry(
        id=row["id"],
        risk_id=row["risk_id"],
        probability=Probability.coerce(row["probability"]),
        impact=Impact.coerce(row["impact"]),
        level=RiskLevel.coerce(row["level"]) or RiskLevel.LOW,
        status=RiskStatus.coerce(row["status"]) or RiskStatus.IDENTIFIED,
        notes=row["notes"],
        actor=_reference(row["actor_id"], row["actor_name"]),
        recorded_at=datetime.fromisoformat(row["recorded_at"]),
    )


class SqliteRiskStore:
    """Risk, cause and history persistence on a single SQLite connection.

    Reads are synchronous. Cause point updates are coroutines so cluster-wide
    edits can gather them.
    """

    def __init__(self, connection: sqlite3.Connection,
                 now: Optional[Callable[[], datetime]] = None):
        self.connection = connection
        self.connection.row_factory = sqlite3.Row
        self.now = now or datetime.now

    @classmethod
    def open(cls, database_url: Optional[str] = None,
             now: Optional[Callable[[], datetime]] = None) -> "SqliteRiskStore":
        return cls(init_database(database_url), now=now)

    def close(self) -> None:
        self.connection.close()

    # Risks

    def list_risks(self) -> List[Risk]:
        cursor = self.connection.execute("SELECT * FROM risks ORDER BY created_at, code")
        return [_row_to_risk(row) for row in cursor.fetchall()]

    def get_risk(self, risk_id: str) -> Risk:
        row = self.connection.execute("SELECT * FROM risks WHERE id = ?", (risk_id,)).fetchone()
        if row is None:
            raise KeyError(f"Risk not found: {risk_id}")
        return _row_to_risk(row)

    def list_risk_codes(self) -> List[str]:
        cursor = self.connection.execute("SELECT code FROM risks")
        return [row["code"] for row in cursor.fetchall()]

    def add_risk(self, risk: Risk) -> Risk:
        row = _risk_to_row(risk)
        placeholders = ", ".join("?" for _ in _RISK_COLUMNS)
        self.connection.execute(
            f"INSERT INTO risks ({', '.join(_RISK_COLUMNS)}) VALUES ({placeholders})",
            tuple(row[column] for column in _RISK_COLUMNS),
        )
        self.connection.commit()
        logger.debug("risk_added", risk_id=risk.id, code=risk.code, risk_level=risk.level.value)
        return risk

    def save_risk(self, risk: Risk) -> Risk:
        row = _risk_to_row(risk)
        assignments = ", ".join(f"{column} = ?" for column in _RISK_COLUMNS if column != "id")
        cursor = self.connection.execute(
            f"UPDATE risks SET {assignments} WHERE id = ?",
            tuple(row[column] for column in _RISK_COLUMNS if column != "id") + (risk.id,),
        )
        if cursor.rowcount == 0:
            raise KeyError(f"Risk not found: {risk.id}")
        self.connection.commit()
        return risk

    # Causes

    def list_causes(self, risk_id: Optional[str] = None) -> List[Cause]:
        if risk_id is None:
            cursor = self.connection.execute(
                "SELECT * FROM risk_causes ORDER BY risk_id, position, created_at")
        else:
            cursor = self.connection.execute(
                "SELECT * FROM risk_causes WHERE risk_id = ? ORDER BY position, created_at",
                (risk_id,))
        return [_row_to_cause(row) for row in cursor.fetchall()]

    def add_cause(self, cause: Cause) -> Cause:
        if cause.id is None:
            cause.id = _new_id()
        if cause.created_at is None:
            cause.created_at = self.now()
        position = self.connection.execute(
            "SELECT COUNT(*) FROM risk_causes WHERE risk_id = ?", (cause.risk_id,)).fetchone()[0]
        self.connection.execute(
            "INSERT INTO risk_causes (id, risk_id, description, category, position, created_at,"
            " updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (cause.id, cause.risk_id, cause.description, cause.category, position,
             _iso(cause.created_at), _iso(cause.updated_at)),
        )
        self.connection.commit()
        return cause

    def add_causes(self, causes: Iterable[Cause]) -> List[Cause]:
        return [self.add_cause(cause) for cause in causes]

    async def update_cause(self, cause_id: str, *, description: str,
                           category: Optional[str]) -> None:
        cursor = self.connection.execute(
            "UPDATE risk_causes SET description = ?, category = ?, updated_at = ? WHERE id = ?",
            (description, category, self.now().isoformat(), cause_id),
        )
        if cursor.rowcount == 0:
            raise KeyError(f"Cause not found: {cause_id}")
        self.connection.commit()

    async def delete_cause(self, cause_id: str) -> None:
        cursor = self.connection.execute("DELETE FROM risk_causes WHERE id = ?", (cause_id,))
        if cursor.rowcount == 0:
            raise KeyError(f"Cause not found: {cause_id}")
        self.connection.commit()

    # History

    def record_history(self, entry: RiskHistoryEntry) -> RiskHistoryEntry:
        entry_id = entry.id or _new_id()
        self.connection.execute(
            "INSERT INTO risk_history (id, risk_id, probability, impact, level, status, notes,"
            " actor_id, actor_name, recorded_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (entry_id, entry.risk_id, _enum_value(entry.probability), _enum_value(entry.impact),
             entry.level.value, entry.status.value, entry.notes,
             entry.actor.id if entry.actor else None,
             entry.actor.name if entry.actor else None,
             entry.recorded_at.isoformat()),
        )
        self.connection.commit()
        return self.get_history_entry(entry_id)

    def get_history_entry(self, entry_id: str) -> RiskHistoryEntry:
        row = self.connection.execute(
            "SELECT * FROM risk_history WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            raise KeyError(f"History entry not found: {entry_id}")
        return _row_to_history(row)

    def list_history(self, risk_id: str) -> List[RiskHistoryEntry]:
        cursor = self.connection.execute(
            "SELECT * FROM risk_history WHERE risk_id = ?", (risk_id,))
        return order_history(_row_to_history(row) for row in cursor.fetchall())


__all__ = ["SqliteRiskStore"]
