"""
Repository for ingestion run lifecycle persistence and listing.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.ingestion_run import IngestionRun, IngestionRunStatus


class IngestionRunRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def start_run(self, *, source: str, file_name: str | None = None) -> IngestionRun:
        run = IngestionRun(
            source=source,
            file_name=file_name,
            status=IngestionRunStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        self._session.add(run)
        self._session.flush()
        return run

    def get_run(self, run_id: uuid.UUID) -> IngestionRun | None:
        return self._session.get(IngestionRun, run_id)

    def list_runs(
        self,
        *,
        limit: int = 50,
        status: str | None = None,
    ) -> list[IngestionRun]:
        stmt: Select[tuple[IngestionRun]] = select(IngestionRun)
        if status:
            stmt = stmt.where(IngestionRun.status == status)

        stmt = stmt.order_by(IngestionRun.started_at.desc(), IngestionRun.created_at.desc())
        return list(self._session.scalars(stmt.limit(max(1, limit))).all())

    def mark_completed(
        self,
        *,
        run_id: uuid.UUID,
        result_payload: dict[str, Any],
        file_name: str | None = None,
    ) -> IngestionRun | None:
        run = self.get_run(run_id)
        if run is None:
            return None
        run.status = IngestionRunStatus.COMPLETED
        run.completed_at = datetime.now(timezone.utc)
        run.result_payload = result_payload
        run.error_message = None
        if file_name:
            run.file_name = file_name
        return run

    def mark_failed(
        self,
        *,
        run_id: uuid.UUID,
        error_message: str,
        result_payload: dict[str, Any] | None = None,
    ) -> IngestionRun | None:
        run = self.get_run(run_id)
        if run is None:
            return None
        run.status = IngestionRunStatus.FAILED
        run.completed_at = datetime.now(timezone.utc)
        run.error_message = error_message
        if result_payload is not None:
            run.result_payload = result_payload
        return run
