"""Append-only sinks for priced model invocations."""
from __future__ import annotations

import logging
import threading
from datetime import timezone
from typing import Protocol

from sqlalchemy.orm import sessionmaker

from workflowgen.models import CostRecordRow
from workflowgen.schemas.cost import CostRecord

logger = logging.getLogger(__name__)


class CostLogSink(Protocol):
    def append(self, record: CostRecord) -> None: ...

    def records(self, organization_id: str | None = None) -> list[CostRecord]: ...


class InMemoryCostLog:
    """Process-local log. Safe to share between concurrent requests."""

    def __init__(self, max_entries: int | None = None) -> None:
        self.max_entries = max_entries
        self._records: list[CostRecord] = []
        self._lock = threading.Lock()

    def append(self, record: CostRecord) -> None:
        with self._lock:
            self._records.append(record)
            if self.max_entries is not None and len(self._records) > self.max_entries:
                del self._records[: len(self._records) - self.max_entries]

    def records(self, organization_id: str | None = None) -> list[CostRecord]:
        with self._lock:
            snapshot = list(self._records)
        if organization_id is None:
            return snapshot
        return [r for r in snapshot if r.organization_id == organization_id]


class SqlCostLog:
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def append(self, record: CostRecord) -> None:
        db = self.session_factory()
        try:
            db.add(
                CostRecordRow(
                    model=record.model,
                    provider=record.provider,
                    input_tokens=record.input_tokens,
                    output_tokens=record.output_tokens,
                    cost_usd=record.cost,
                    job_id=record.job_id,
                    organization_id=record.organization_id,
                    tier=record.tier,
                    complexity=record.complexity,
                    success=record.success,
                    error=record.error,
                    created_at=record.timestamp,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"Failed to persist cost record for job {record.job_id}")
            raise
        finally:
            db.close()

    def records(self, organization_id: str | None = None) -> list[CostRecord]:
        db = self.session_factory()
        try:
            query = db.query(CostRecordRow)
            if organization_id is not None:
                query = query.filter(CostRecordRow.organization_id == organization_id)
            rows = query.order_by(CostRecordRow.created_at.asc()).all()
            return [self._to_record(row) for row in rows]
        finally:
            db.close()

    @staticmethod
    def _to_record(row: CostRecordRow) -> CostRecord:
        timestamp = row.created_at
        # SQLite drops tzinfo on the way back.
        if timestamp is not None and timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return CostRecord(
            model=row.model,
            provider=row.provider,
            input_tokens=row.input_tokens or 0,
            output_tokens=row.output_tokens or 0,
            cost=float(row.cost_usd or 0.0),
            job_id=row.job_id,
            organization_id=row.organization_id,
            tier=row.tier,
            complexity=row.complexity,
            success=bool(row.success),
            error=row.error,
            timestamp=timestamp,
        )
