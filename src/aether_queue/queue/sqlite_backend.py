"""SQLite implementation of KeyValueStore.

This module provides the local-first durable store using:
- sqlite-utils for schema management and upserts
- WAL mode for crash-safe writes
- One row per key holding a JSON document
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from sqlite_utils import Database

from .backends import KeyValueStore

logger = logging.getLogger(__name__)

TABLE_NAME = "kv"


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed document store.

    Features:
    - WAL journal for durability across crashes
    - Whole-document replace per key (insert with replace)
    - In-memory mode when no path is given
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """Open (and create if needed) the key-value database.

        Args:
            db_path: Path to the SQLite file, or None for an in-memory database
        """
        if db_path is None:
            self.db_path = None
            self.db = Database(memory=True)
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.db = Database(str(self.db_path))
            self.db.conn.execute("PRAGMA journal_mode=WAL")
            self.db.conn.execute("PRAGMA synchronous=NORMAL")
            self.db.conn.commit()

        self._create_schema()

    def _create_schema(self) -> None:
        if TABLE_NAME not in self.db.table_names():
            self.db[TABLE_NAME].create(
                {"key": str, "value": str, "updated_at": str},
                pk="key",
            )

    def get(self, key: str) -> Optional[Any]:
        rows = list(self.db[TABLE_NAME].rows_where("key = ?", [key], limit=1))
        if not rows:
            return None
        return json.loads(rows[0]["value"])

    def set(self, key: str, value: Any) -> None:
        self.db[TABLE_NAME].insert(
            {
                "key": key,
                "value": json.dumps(value),
                "updated_at": datetime.now().isoformat(),
            },
            pk="key",
            replace=True,
        )
        logger.debug("Stored %s", key)

    def delete(self, key: str) -> None:
        self.db.execute(f"DELETE FROM {TABLE_NAME} WHERE key = ?", [key])
        self.db.conn.commit()

    def keys(self):
        return [row["key"] for row in self.db[TABLE_NAME].rows]

    def close(self) -> None:
        self.db.close()
