"""Persistence for submitted leave applications."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SUBMITTED_STATUS = "Submitted"


@dataclass(slots=True)
class LeaveApplication:
    id: int
    data: dict[str, Any]
    status: str
    created_at: str


class LeaveStore:
    """Append-only SQLite table; each submission is one INSERT.

    SQLite serializes writers, so concurrent submissions never overwrite each
    other the way a read-modify-write of a JSON file would.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        _ensure_leave_table(self.db_path)

    async def submit(self, data: dict[str, Any]) -> LeaveApplication:
        return await asyncio.to_thread(self._insert, data)

    async def list_applications(self) -> list[LeaveApplication]:
        return await asyncio.to_thread(self._select_all)

    def _insert(self, data: dict[str, Any]) -> LeaveApplication:
        created_at = datetime.now(timezone.utc).isoformat()
        application_id = time.time_ns() // 1_000_000
        with sqlite3.connect(self.db_path, timeout=30) as conn:
            cur = conn.execute(
                "INSERT INTO leave_applications(external_id, payload, status, created_at) "
                "VALUES(?, ?, ?, ?)",
                (
                    application_id,
                    json.dumps(data, ensure_ascii=False, sort_keys=True),
                    SUBMITTED_STATUS,
                    created_at,
                ),
            )
            row_id = cur.lastrowid
            conn.commit()
        logger.info("Leave application %s saved (row %s)", application_id, row_id)
        return LeaveApplication(
            id=application_id, data=dict(data), status=SUBMITTED_STATUS, created_at=created_at
        )

    def _select_all(self) -> list[LeaveApplication]:
        with sqlite3.connect(self.db_path, timeout=30) as conn:
            rows = conn.execute(
                "SELECT external_id, payload, status, created_at "
                "FROM leave_applications ORDER BY row_id"
            ).fetchall()
        return [
            LeaveApplication(id=row[0], data=json.loads(row[1]), status=row[2], created_at=row[3])
            for row in rows
        ]


def _ensure_leave_table(db_path: Path) -> None:
    if db_path.parent and not db_path.parent.exists():
        db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS leave_applications ("
            "row_id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "external_id INTEGER NOT NULL, "
            "payload TEXT NOT NULL, "
            "status TEXT NOT NULL, "
            "created_at TEXT NOT NULL)"
        )
        conn.commit()
