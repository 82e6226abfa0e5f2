# MIT License
# Copyright (c) 2025 Hashborn

from contextlib import contextmanager
import logging
import sqlite3
import threading
from typing import Dict, Iterable, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS state (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
'''


class StorageDB:
    """
    Flat key/value store in a single sqlite file.

    Key families: `vault:state`, `stake:<addr>`, `nonce:<addr>`,
    `token:meta`, `bal:<addr>`, `allow:<owner>:<spender>`.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        with self._tx() as cur:
            cur.execute(_SCHEMA)

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Cursor]:
        """Serialized cursor; commits on success, rolls back on error."""
        with self._lock:
            cur = self.conn.cursor()
            try:
                yield cur
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.error(f"sqlite write to {self.db_path} failed: {e}")
                raise
            finally:
                cur.close()

    def get_state(self, key: str) -> Optional[str]:
        with self._tx() as cur:
            row = cur.execute('SELECT value FROM state WHERE key = ?', (key,)).fetchone()
        return row[0] if row else None

    def set_state(self, key: str, value: str):
        self.write_batch([(key, value)])

    def write_batch(self, items: Iterable[Tuple[str, str]], deletes: Iterable[str] = ()):
        """Upserts `items` and removes `deletes` in one transaction."""
        with self._tx() as cur:
            cur.executemany('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', list(items))
            cur.executemany('DELETE FROM state WHERE key = ?', [(k,) for k in deletes])

    def delete_state(self, key: str):
        self.write_batch([], deletes=[key])

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        # Literal prefix match
        with self._tx() as cur:
            rows = cur.execute(
                'SELECT key, value FROM state WHERE substr(key, 1, ?) = ?', (len(prefix), prefix)
            ).fetchall()
        return dict(rows)

    def clear_state(self):
        with self._tx() as cur:
            cur.execute('DELETE FROM state')

    def close(self):
        with self._lock:
            self.conn.close()
