"""
db/models/ingestion_run.py

Audit log of spreadsheet ingestion runs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class IngestionRunStatus:
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionRun(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "ingestion_runs"

    source: Mapped[str] = mapped_column(
        String(2048),
        nullable=False,
        comment="Source URL, local path or upload file name",
    )
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=IngestionRunStatus.RUNNING,
    )
    result_payload: Mapped[dict[str, Any] | None] = mapped_column(
        nullable=True,
        comment="Counters and (truncated) row errors",
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_ingestion_runs_status", "status"),
        Index("ix_ingestion_runs_created_at", "created_at"),
    )
