import copy
import json
import os
import threading
from typing import Any, Dict, Optional, Protocol

try:
    import psycopg
    from psycopg.types.json import Jsonb
except Exception:  # pragma: no cover - only relevant when Postgres is enabled.
    psycopg = None
    Jsonb = None


def normalize_database_url(database_url: str) -> str:
    if database_url.startswith("postgres://"):
        return "postgresql://" + database_url[len("postgres://") :]
    return database_url


def merge_values(current: Any, value: Any) -> Any:
    if isinstance(current, dict) and isinstance(value, dict):
        merged = dict(current)
        merged.update(value)
        return merged
    return value


class KeyValueStore(Protocol):
    storage_name: str

    def get(self, key: str) -> Optional[Any]:
        pass

    def set(self, key: str, value: Any) -> None:
        pass

    def merge(self, key: str, value: Any) -> Any:
        pass


class InMemoryKeyValueStore:
    storage_name = "memory"

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key not in self._values:
                return None
            return copy.deepcopy(self._values[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = copy.deepcopy(value)

    def merge(self, key: str, value: Any) -> Any:
        with self._lock:
            merged = merge_values(self._values.get(key), copy.deepcopy(value))
            self._values[key] = merged
            return copy.deepcopy(merged)


class PostgresKeyValueStore:
    storage_name = "postgres"

    def __init__(self, database_url: str, *, namespace: str = "default") -> None:
        if psycopg is None or Jsonb is None:
            raise RuntimeError("psycopg is required when DATABASE_URL is set.")
        self._database_url = normalize_database_url(database_url)
        self._namespace = namespace
        self._ensure_schema()

    def _connect(self):
        return psycopg.connect(self._database_url, autocommit=True)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS pitch_kv (
                        namespace TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value JSONB NULL,
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                        PRIMARY KEY (namespace, key)
                    )
                    """
                )

    def get(self, key: str) -> Optional[Any]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT value FROM pitch_kv WHERE namespace = %s AND key = %s",
                    (self._namespace, key),
                )
                row = cur.fetchone()
                if row is None:
                    return None
                value = row[0]
                if value is not None and isinstance(value, str):
                    value = json.loads(value)
                return value

    def set(self, key: str, value: Any) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO pitch_kv (namespace, key, value)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (namespace, key)
                    DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
                    """,
                    (self._namespace, key, Jsonb(value)),
                )

    def merge(self, key: str, value: Any) -> Any:
        merged = merge_values(self.get(key), value)
        self.set(key, merged)
        return merged


def build_store() -> KeyValueStore:
    database_url = os.getenv("DATABASE_URL", "").strip()
    if database_url:
        namespace = os.getenv("PITCH_STORE_NAMESPACE", "default").strip() or "default"
        return PostgresKeyValueStore(database_url=database_url, namespace=namespace)
    return InMemoryKeyValueStore()
