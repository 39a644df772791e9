from .audit_store import (
    init_audit_database,
    save_audit_record,
    get_audit_record,
    list_audit_records,
)

__all__ = [
    "init_audit_database",
    "save_audit_record",
    "get_audit_record",
    "list_audit_records",
]
