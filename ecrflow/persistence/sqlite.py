"""SQLite implementation of the subject repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import SubjectNotFoundError
from .models import SubjectRecord
from .repository import SubjectRepository

_SELECT_COLUMNS = (
    "subject_id, patient_id, encounter_id, start_date, end_date, status, clinical_data"
)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteSubjectRepository(SubjectRepository):
    """Persist subject records using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS subjects (
                subject_id TEXT PRIMARY KEY,
                patient_id TEXT NOT NULL,
                encounter_id TEXT,
                start_date TEXT,
                end_date TEXT,
                status TEXT NOT NULL DEFAULT '',
                clinical_data TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> SubjectRecord:
        return SubjectRecord(
            subject_id=row["subject_id"],
            patient_id=row["patient_id"],
            encounter_id=row["encounter_id"],
            start_date=_from_iso(row["start_date"]),
            end_date=_from_iso(row["end_date"]),
            status=row["status"] or "",
            clinical_data=json.loads(row["clinical_data"]) if row["clinical_data"] else {},
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_subject(self, record: SubjectRecord) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO subjects ({_SELECT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                record.subject_id,
                record.patient_id,
                record.encounter_id,
                _to_iso(record.start_date),
                _to_iso(record.end_date),
                record.status,
                json.dumps(record.clinical_data),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Subject {record.subject_id} already exists") from e

    async def get_subject(self, subject_id: str) -> SubjectRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_SELECT_COLUMNS} FROM subjects WHERE subject_id = ?",
            subject_id,
        )
        if not row:
            return None
        return self._row_to_record(row)

    async def update_status(self, subject_id: str, status: str) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE subjects SET status = ? WHERE subject_id = ?",
            status,
            subject_id,
        )
        if not updated:
            raise SubjectNotFoundError(f"Subject {subject_id} not found")

    async def update_clinical_data(
        self, subject_id: str, clinical_data: dict
    ) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE subjects SET clinical_data = ? WHERE subject_id = ?",
            json.dumps(clinical_data),
            subject_id,
        )
        if not updated:
            raise SubjectNotFoundError(f"Subject {subject_id} not found")

    async def list_subjects(self) -> list[SubjectRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_SELECT_COLUMNS} FROM subjects ORDER BY subject_id",
        )
        return [self._row_to_record(row) for row in rows]
