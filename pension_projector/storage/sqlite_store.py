from __future__ import annotations

import sqlite3
import threading
import uuid
from datetime import datetime
from typing import List, Optional

from pension_projector.errors import ScenarioNotFound
from pension_projector.schemas.projection import PlanInput, ProjectionSummary
from pension_projector.schemas.scenario import ScenarioRecord, utcnow
from pension_projector.utils.logging import get_logger

logger = get_logger("storage.sqlite")


class SQLiteScenarioStore:
    """Server-side scenario store: one row per scenario, plan and summary as JSON."""

    def __init__(self, db_path: str = "scenarios.db") -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        # a private connection keeps ":memory:" databases alive between calls
        self._memory_conn: Optional[sqlite3.Connection] = None
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(db_path, check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _close(self, conn: sqlite3.Connection) -> None:
        if conn is not self._memory_conn:
            conn.close()

    def init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                create table if not exists scenarios (
                    id text primary key,
                    name text not null,
                    plan text not null,
                    source text not null,
                    summary text,
                    created_at text not null,
                    updated_at text not null
                )
                """
            )
            conn.commit()
        finally:
            self._close(conn)

    def save(self, record: ScenarioRecord) -> str:
        scenario_id = record.id or uuid.uuid4().hex
        now = utcnow().isoformat()
        with self._lock:
            conn = self._connect()
            try:
                existing = conn.execute("select id from scenarios where id = ?", (scenario_id,)).fetchone()
                if existing:
                    conn.execute(
                        "update scenarios set name = ?, plan = ?, updated_at = ? where id = ?",
                        (record.name, record.plan.model_dump_json(), now, scenario_id),
                    )
                else:
                    conn.execute(
                        """
                        insert into scenarios (id, name, plan, source, summary, created_at, updated_at)
                        values (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            scenario_id,
                            record.name,
                            record.plan.model_dump_json(),
                            record.source,
                            record.summary.model_dump_json() if record.summary else None,
                            record.created_at.isoformat(),
                            now,
                        ),
                    )
                conn.commit()
            finally:
                self._close(conn)
        logger.info(f"scenario_saved id={scenario_id}")
        return scenario_id

    def load(self, scenario_id: str) -> ScenarioRecord:
        conn = self._connect()
        try:
            row = conn.execute("select * from scenarios where id = ?", (scenario_id,)).fetchone()
        finally:
            self._close(conn)
        if row is None:
            raise ScenarioNotFound(scenario_id)
        return _record_from_row(row)

    def list(self) -> List[ScenarioRecord]:
        conn = self._connect()
        try:
            rows = conn.execute("select * from scenarios order by created_at, id").fetchall()
        finally:
            self._close(conn)
        return [_record_from_row(row) for row in rows]

    def save_summary(self, scenario_id: str, summary: ProjectionSummary) -> None:
        with self._lock:
            conn = self._connect()
            try:
                updated = conn.execute(
                    "update scenarios set summary = ? where id = ?",
                    (summary.model_dump_json(), scenario_id),
                ).rowcount
                conn.commit()
            finally:
                self._close(conn)
        if updated == 0:
            raise ScenarioNotFound(scenario_id)


def _record_from_row(row: sqlite3.Row) -> ScenarioRecord:
    return ScenarioRecord(
        id=row["id"],
        name=row["name"],
        plan=PlanInput.model_validate_json(row["plan"]),
        source=row["source"],
        summary=ProjectionSummary.model_validate_json(row["summary"]) if row["summary"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
