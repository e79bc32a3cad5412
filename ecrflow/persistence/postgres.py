"""PostgreSQL implementation of the subject repository."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from ..errors import SubjectNotFoundError
from .models import SubjectRecord
from .repository import SubjectRepository

_SELECT_COLUMNS = (
    "subject_id, patient_id, encounter_id, start_date, end_date, status, clinical_data"
)


def _decode_json(value: Any) -> dict:
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_count(command_status: str) -> int:
    # asyncpg returns e.g. "UPDATE 1"
    try:
        return int(command_status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresSubjectRepository(SubjectRepository):
    """Persist subject records using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS subjects (
                subject_id TEXT PRIMARY KEY,
                patient_id TEXT NOT NULL,
                encounter_id TEXT,
                start_date TIMESTAMPTZ,
                end_date TIMESTAMPTZ,
                status TEXT NOT NULL DEFAULT '',
                clinical_data JSONB
            )
            """
        )

    @staticmethod
    def _row_to_record(row: asyncpg.Record) -> SubjectRecord:
        return SubjectRecord(
            subject_id=row["subject_id"],
            patient_id=row["patient_id"],
            encounter_id=row["encounter_id"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            status=row["status"] or "",
            clinical_data=_decode_json(row["clinical_data"]),
        )

    # ------------------------------------------------------------------
    async def create_subject(self, record: SubjectRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO subjects ({_SELECT_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                record.subject_id,
                record.patient_id,
                record.encounter_id,
                record.start_date,
                record.end_date,
                record.status,
                json.dumps(record.clinical_data),
            )
        except asyncpg.UniqueViolationError as e:
            raise ValueError(f"Subject {record.subject_id} already exists") from e
        finally:
            await conn.close()

    async def get_subject(self, subject_id: str) -> SubjectRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM subjects WHERE subject_id = $1",
                subject_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return self._row_to_record(row)

    async def update_status(self, subject_id: str, status: str) -> None:
        conn = await self._connect()
        try:
            result = await conn.execute(
                "UPDATE subjects SET status = $1 WHERE subject_id = $2",
                status,
                subject_id,
            )
        finally:
            await conn.close()
        if not _row_count(result):
            raise SubjectNotFoundError(f"Subject {subject_id} not found")

    async def update_clinical_data(
        self, subject_id: str, clinical_data: dict
    ) -> None:
        conn = await self._connect()
        try:
            result = await conn.execute(
                "UPDATE subjects SET clinical_data = $1 WHERE subject_id = $2",
                json.dumps(clinical_data),
                subject_id,
            )
        finally:
            await conn.close()
        if not _row_count(result):
            raise SubjectNotFoundError(f"Subject {subject_id} not found")

    async def list_subjects(self) -> list[SubjectRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_SELECT_COLUMNS} FROM subjects ORDER BY subject_id"
            )
        finally:
            await conn.close()
        return [self._row_to_record(r) for r in rows]
