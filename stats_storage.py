#!/usr/bin/env python3
"""
Stats Storage - Key-value persistence ports for per-user statistics
Each backend stores JSON documents addressed by a string key
"""

import os
import json
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, Any
from urllib.parse import quote

import psycopg2
import psycopg2.extras

from config import STATS_BACKEND, STATS_DIR, DATABASE_URL

logger = logging.getLogger(__name__)


class StatsStorage(ABC):
    """Persistence port used by the stats store"""

    @abstractmethod
    def load(self, key: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def save(self, key: str, value: Dict[str, Any]):
        pass

    @abstractmethod
    def delete(self, key: str):
        pass


class InMemoryStatsStorage(StatsStorage):
    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def save(self, key: str, value: Dict[str, Any]):
        # Stored serialized so callers never share mutable state with the store
        with self._lock:
            self._data[key] = json.dumps(value)

    def delete(self, key: str):
        with self._lock:
            self._data.pop(key, None)


class JsonFileStatsStorage(StatsStorage):
    """One JSON file per key inside a directory"""

    def __init__(self, directory: str = STATS_DIR):
        self.directory = directory
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, key: str) -> str:
        # Percent-encoded so distinct keys never share a file
        safe_key = quote(key, safe="@")
        return os.path.join(self.directory, f"{safe_key}.json")

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt stats file {path}: {e}")
            return None

    def save(self, key: str, value: Dict[str, Any]):
        path = self._path(key)
        fd, temp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f)
            os.replace(temp_path, path)
        finally:
            if os.path.exists(temp_path):
                os.unlink(temp_path)

    def delete(self, key: str):
        path = self._path(key)
        if os.path.exists(path):
            os.unlink(path)


class PostgresStatsStorage(StatsStorage):
    """Stats documents in a single JSONB table"""

    def __init__(self, db_url: str = DATABASE_URL):
        self.db_url = db_url
        self.conn: Any = None

    def connect(self):
        """Establish database connection and make sure the table exists"""
        self.conn = psycopg2.connect(self.db_url)
        self.conn.autocommit = True
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS user_stats (
                key TEXT PRIMARY KEY,
                value JSONB NOT NULL,
                updated_at TIMESTAMP NOT NULL DEFAULT NOW()
            )
        """)
        cur.close()

    def close(self):
        """Close database connection"""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _cursor(self, **kwargs):
        if self.conn is None:
            self.connect()
        return self.conn.cursor(**kwargs)

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        cur = self._cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        cur.execute("SELECT value FROM user_stats WHERE key = %s", (key,))
        row = cur.fetchone()
        cur.close()
        return row["value"] if row else None

    def save(self, key: str, value: Dict[str, Any]):
        cur = self._cursor()
        cur.execute("""
            INSERT INTO user_stats (key, value, updated_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (key) DO UPDATE
            SET value = EXCLUDED.value, updated_at = NOW()
        """, (key, psycopg2.extras.Json(value)))
        cur.close()

    def delete(self, key: str):
        cur = self._cursor()
        cur.execute("DELETE FROM user_stats WHERE key = %s", (key,))
        cur.close()


def create_storage(backend: str = STATS_BACKEND) -> StatsStorage:
    """Build the storage backend named in configuration"""
    backend = (backend or "file").lower()
    if backend == "memory":
        return InMemoryStatsStorage()
    if backend == "postgres":
        return PostgresStatsStorage(DATABASE_URL)
    if backend == "file":
        return JsonFileStatsStorage(STATS_DIR)
    raise ValueError(f"Unknown stats backend '{backend}'")
