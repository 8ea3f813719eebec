from packvault.db.database import drop_db, engine, init_db
from packvault.db.operations import (
    clear_records,
    count_records,
    delete_metadata,
    delete_records,
    get_all_records,
    get_metadata,
    get_record,
    get_unshown_records,
    mark_records_shown,
    record_to_model,
    set_metadata,
    upsert_records,
)
from packvault.db.store import DurableRecordStore

__all__ = [
    "DurableRecordStore",
    "clear_records",
    "count_records",
    "delete_metadata",
    "delete_records",
    "drop_db",
    "engine",
    "get_all_records",
    "get_metadata",
    "get_record",
    "get_unshown_records",
    "init_db",
    "mark_records_shown",
    "record_to_model",
    "set_metadata",
    "upsert_records",
]
