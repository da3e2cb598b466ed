"""golfbuddy storage.

Local-first SQLite entity store plus the cursor store that keeps sync
watermarks and status in the same database.
"""

from .cursors import CursorStore
from .schema import ALLOWED_TABLES, validate_table_name
from .sqlite import EntityTable, SQLiteEntityStore, record_from_dict, record_to_dict

__all__ = [
    "ALLOWED_TABLES",
    "CursorStore",
    "EntityTable",
    "SQLiteEntityStore",
    "record_from_dict",
    "record_to_dict",
    "validate_table_name",
]
