import json
import sqlite3
from typing import Any, Optional


def init_audit_database(db_path: str) -> sqlite3.Connection:
    # Writes arrive from whichever thread runs the event loop
    conn = sqlite3.connect(db_path, check_same_thread=False)
    cursor = conn.cursor()

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS consensus_decisions (
            job_id TEXT PRIMARY KEY,
            task TEXT NOT NULL,
            context TEXT,
            criticality_level TEXT,
            rule_name TEXT,
            agreement REAL,
            confidence REAL,
            providers_json TEXT,
            requires_approval INTEGER,
            processing_time_ms INTEGER,
            record_json TEXT,
            logged_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('CREATE INDEX IF NOT EXISTS idx_decisions_task ON consensus_decisions(task)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_decisions_approval ON consensus_decisions(requires_approval)')

    conn.commit()
    return conn


def save_audit_record(record: dict[str, Any], conn: sqlite3.Connection) -> None:
    """Write-once: a second record for the same job_id is ignored."""
    cursor = conn.cursor()
    cursor.execute('''
        INSERT OR IGNORE INTO consensus_decisions
        (job_id, task, context, criticality_level, rule_name, agreement, confidence,
         providers_json, requires_approval, processing_time_ms, record_json, logged_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ''', (
        record['job_id'],
        record['task'],
        record.get('context', ''),
        record['criticality_level'],
        record.get('rule_name', ''),
        record['agreement'],
        record['confidence'],
        json.dumps(record.get('providers', [])),
        1 if record['requires_approval'] else 0,
        record['processing_time_ms'],
        json.dumps(record, default=str),
        record.get('timestamp')
    ))

    conn.commit()


def get_audit_record(job_id: str, conn: sqlite3.Connection) -> Optional[dict[str, Any]]:
    cursor = conn.cursor()
    cursor.execute('SELECT record_json FROM consensus_decisions WHERE job_id = ?', (job_id,))
    row = cursor.fetchone()

    if row and row[0]:
        return json.loads(row[0])
    return None


def list_audit_records(
    conn: sqlite3.Connection,
    task: Optional[str] = None,
    requires_approval: Optional[bool] = None,
    limit: int = 100
) -> list[dict[str, Any]]:
    query = 'SELECT record_json FROM consensus_decisions WHERE 1=1'
    params: list[Any] = []
    if task is not None:
        query += ' AND task = ?'
        params.append(task)
    if requires_approval is not None:
        query += ' AND requires_approval = ?'
        params.append(1 if requires_approval else 0)
    query += ' ORDER BY logged_at DESC, rowid DESC LIMIT ?'
    params.append(limit)

    cursor = conn.cursor()
    cursor.execute(query, params)
    return [json.loads(row[0]) for row in cursor.fetchall()]
