# decision_core/audit_trail.py
"""
Audit Logger - records every consensus decision in an external event store.

Design Decisions:
- AuditRecord is a flat pydantic model so any sink can serialize it
- Sinks are pluggable (AuditSink); SQLiteAuditSink is the bundled store
- Write failures are logged and swallowed: an unavailable audit store must
  never fail a consensus job that already produced its decision
- Trail version field enables schema evolution without breaking consumers
"""
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from decision_core.db.audit_store import (
    get_audit_record,
    init_audit_database,
    list_audit_records,
    save_audit_record,
)
from decision_core.models import ConsensusRequest, ConsensusResponse, CriticalityLevel

logger = logging.getLogger(__name__)


class AuditRecord(BaseModel):
    """One write-once record per completed consensus job."""
    job_id: str
    task: str
    context: str = ""
    agreement: float
    confidence: float
    providers: List[str]
    criticality_level: CriticalityLevel
    requires_approval: bool
    processing_time_ms: int
    rule_name: str
    approval_reasons: List[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    trail_version: str = "v1.0"


class AuditSink(ABC):

    @abstractmethod
    def write(self, record: AuditRecord) -> None:
        pass

    def close(self) -> None:
        """Release the underlying store, if any."""
        return None


class SQLiteAuditSink(AuditSink):
    """
    Audit records in a local SQLite database.

    Usage:
        sink = SQLiteAuditSink("consensus_audit.db")
        logger = AuditLogger(sink)
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn: sqlite3.Connection = init_audit_database(db_path)
        self._lock = threading.Lock()

    def write(self, record: AuditRecord) -> None:
        with self._lock:
            save_audit_record(record.model_dump(mode="json"), self.conn)

    def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return get_audit_record(job_id, self.conn)

    def records(self, task: Optional[str] = None, requires_approval: Optional[bool] = None, limit: int = 100) -> List[Dict[str, Any]]:
        with self._lock:
            return list_audit_records(self.conn, task=task, requires_approval=requires_approval, limit=limit)

    def close(self) -> None:
        with self._lock:
            self.conn.close()


class AuditLogger:
    """
    Builds audit records from request/response pairs and hands them to a sink.

    With no sink configured, records only go to the application log.
    """

    # Schema version for audit record format
    # Increment when structure changes to enable backward compatibility
    TRAIL_VERSION = "v1.0"

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink

    def build_record(self, request: ConsensusRequest, response: ConsensusResponse) -> AuditRecord:
        return AuditRecord(
            job_id=response.metadata.job_id,
            task=request.task,
            context=request.context,
            agreement=response.agreement,
            confidence=response.confidence,
            providers=list(response.providers),
            criticality_level=request.criticality_level,
            requires_approval=response.requires_approval,
            processing_time_ms=response.metadata.processing_time_ms,
            rule_name=response.metadata.rule_name,
            approval_reasons=list(response.metadata.approval_reasons),
            trail_version=self.TRAIL_VERSION
        )

    def log_decision(self, request: ConsensusRequest, response: ConsensusResponse) -> bool:
        """
        Persist the decision.

        Returns:
            True if the sink accepted the record (or no sink is configured),
            False if the write failed
        """
        record = self.build_record(request, response)
        logger.info(
            f"Consensus decision {record.job_id}: task={record.task} "
            f"confidence={record.confidence:.3f} agreement={record.agreement:.3f} "
            f"requires_approval={record.requires_approval}"
        )
        if self.sink is None:
            return True

        try:
            self.sink.write(record)
        except Exception as e:
            logger.warning(f"Failed to log consensus decision {record.job_id}: {e}")
            return False
        return True

    def close(self) -> None:
        if self.sink is not None:
            self.sink.close()
