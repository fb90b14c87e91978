"""
SQLite plumbing shared by the record store and the progress tracker
"""

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional, Union

from cve_db.sources.base.exceptions import StoreException

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class SQLiteStore:
    """Owns one SQLite connection and creates its schema on connect"""

    store_name = "sqlite"
    schema_queries: List[str] = []

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = str(db_path)
        self.conn: Optional[sqlite3.Connection] = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        if self.conn is not None:
            return self.conn
        try:
            if self.db_path != MEMORY_DB:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            if self.db_path != MEMORY_DB:
                # Readers never block the single writer; commits are atomic
                self.conn.execute("PRAGMA journal_mode=WAL")
            self.initialize_schema()
            logger.debug(f"{self.store_name} connected to {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"❌ Unable to open {self.store_name} database {self.db_path}: {e}")
            self.conn = None
            raise StoreException(f"Unable to open database {self.db_path}: {e}", source_name=self.store_name)
        return self.conn

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def initialize_schema(self):
        with self.conn:
            for query in self.schema_queries:
                self.conn.execute(query)

    @property
    def db(self) -> sqlite3.Connection:
        return self.conn if self.conn is not None else self.connect()
