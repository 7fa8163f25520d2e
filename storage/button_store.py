"""Record store for badges and hosts.

Two independent key/value spaces are kept: buttons keyed by content hash
and hosts keyed by hostname. Records are only ever changed through
``update``, which runs a merge function inside a per-key critical section
and commits the result before returning.
"""

import copy
import json
import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar

import psycopg2
from psycopg2.extras import Json

from storage.records import Button, ButtonDB, Host

logger = logging.getLogger(__name__)

SPACE_BUTTONS = "buttons"
SPACE_HOSTS = "hosts"

# Table and key column per record space
_TABLES: dict[str, tuple[str, str]] = {
    SPACE_BUTTONS: ("buttons", "hash"),
    SPACE_HOSTS: ("hosts", "host"),
}

DEFAULT_LOCK_SHARDS = 64

RecordT = TypeVar("RecordT", Button, Host)
RawMerge = Callable[[dict[str, Any] | None], dict[str, Any] | None]


class StoreError(Exception):
    """Raised when a record could not be read or durably written."""


def _check_space(space: str) -> None:
    if space not in _TABLES:
        raise ValueError(f"Unknown record space: {space!r}")


class MemoryRecordBackend:
    """In-process backend for tests and dry runs.

    Values are held as JSON text so every read hands out a fresh copy and
    a merge that raises can never leave a half-edited record behind.
    """

    def __init__(self) -> None:
        self._spaces: dict[str, dict[str, str]] = {space: {} for space in _TABLES}
        self._lock = threading.Lock()

    def get(self, space: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            raw = self._spaces[space].get(key)
        return json.loads(raw) if raw is not None else None

    def update(self, space: str, key: str, merge: RawMerge) -> dict[str, Any] | None:
        current = self.get(space, key)
        updated = merge(current)
        if updated is None:
            return None
        encoded = json.dumps(updated)
        with self._lock:
            self._spaces[space][key] = encoded
        return json.loads(encoded)

    def scan(self, space: str) -> dict[str, dict[str, Any]]:
        with self._lock:
            items = dict(self._spaces[space])
        return {key: json.loads(raw) for key, raw in items.items()}


class PostgresRecordBackend:
    """PostgreSQL backend storing each record as JSONB.

    Each update runs in its own transaction guarded by a transaction-scoped
    advisory lock on the key, which also covers rows that do not exist yet,
    so concurrent writers in other processes serialize on the same key.
    """

    def __init__(self, max_connections: int | None = None) -> None:
        """Initialize the backend.

        Args:
            max_connections: Pool size if this backend opens the pool first
                (default: sized from CRAWL_PAGE_WORKERS).
        """
        self.max_connections = max_connections

    def get(self, space: str, key: str) -> dict[str, Any] | None:
        from storage.db import get_cursor

        table, key_column = _TABLES[space]
        with get_cursor(max_connections=self.max_connections) as cursor:
            cursor.execute(f"SELECT value FROM {table} WHERE {key_column} = %s", (key,))
            row = cursor.fetchone()
        return row[0] if row else None

    def update(self, space: str, key: str, merge: RawMerge) -> dict[str, Any] | None:
        from storage.db import get_cursor

        table, key_column = _TABLES[space]
        with get_cursor(max_connections=self.max_connections) as cursor:
            cursor.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (f"{space}:{key}",))
            cursor.execute(
                f"SELECT value FROM {table} WHERE {key_column} = %s FOR UPDATE",
                (key,),
            )
            row = cursor.fetchone()
            updated = merge(row[0] if row else None)
            if updated is None:
                return None
            cursor.execute(
                f"""
                INSERT INTO {table} ({key_column}, value)
                VALUES (%s, %s)
                ON CONFLICT ({key_column}) DO UPDATE SET
                    value = EXCLUDED.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, Json(updated)),
            )
        return updated

    def scan(self, space: str) -> dict[str, dict[str, Any]]:
        from storage.db import get_cursor

        table, key_column = _TABLES[space]
        with get_cursor(max_connections=self.max_connections) as cursor:
            cursor.execute(f"SELECT {key_column}, value FROM {table}")
            return {key: value for key, value in cursor.fetchall()}


class ButtonStore:
    """Atomic update-or-create store for buttons and hosts.

    Attributes:
        backend: Storage backend (Postgres or in-memory).
    """

    def __init__(self, backend: Any, lock_shards: int = DEFAULT_LOCK_SHARDS) -> None:
        """Initialize the store.

        Args:
            backend: Object implementing get/update/scan on raw dicts.
            lock_shards: Number of in-process locks keys are spread across.
        """
        self.backend = backend
        self._locks = [threading.Lock() for _ in range(max(1, lock_shards))]

    def _lock_for(self, space: str, key: str) -> threading.Lock:
        return self._locks[hash((space, key)) % len(self._locks)]

    def get(self, space: str, key: str) -> dict[str, Any] | None:
        """Read one raw record.

        Args:
            space: SPACE_BUTTONS or SPACE_HOSTS.
            key: Content hash or hostname.

        Returns:
            Record as a dict, or None if absent.

        Raises:
            StoreError: If the backend read fails.
        """
        _check_space(space)
        try:
            return self.backend.get(space, key)
        except psycopg2.Error as e:
            raise StoreError(f"Failed to read {space}/{key}: {e}") from e

    def update(self, space: str, key: str, merge: RawMerge) -> dict[str, Any] | None:
        """Apply a merge function to one record as a single atomic unit.

        The merge function receives the current record (or None when absent)
        and returns the new record, or None to leave the store untouched.
        Exceptions raised by the merge function propagate unchanged and
        nothing is written.

        Args:
            space: SPACE_BUTTONS or SPACE_HOSTS.
            key: Content hash or hostname.
            merge: Merge function over raw dicts.

        Returns:
            The record as written, or None if nothing was written.

        Raises:
            StoreError: If the backend write fails.
        """
        _check_space(space)
        with self._lock_for(space, key):
            try:
                return self.backend.update(space, key, merge)
            except psycopg2.Error as e:
                logger.error(f"Store write failed for {space}/{key}: {e}")
                raise StoreError(f"Failed to write {space}/{key}: {e}") from e

    def _update_typed(
        self,
        space: str,
        key: str,
        merge: Callable[[RecordT | None], RecordT | None],
        record_cls: type[RecordT],
    ) -> RecordT | None:
        def raw_merge(current: dict[str, Any] | None) -> dict[str, Any] | None:
            record = record_cls.from_dict(current) if current is not None else None
            updated = merge(record)
            return updated.to_dict() if updated is not None else None

        written = self.update(space, key, raw_merge)
        return record_cls.from_dict(written) if written is not None else None

    def get_button(self, sha256_hash: str) -> Button | None:
        data = self.get(SPACE_BUTTONS, sha256_hash)
        return Button.from_dict(data) if data is not None else None

    def update_button(
        self, sha256_hash: str, merge: Callable[[Button | None], Button | None]
    ) -> Button | None:
        """Update or create the button keyed by a content hash."""
        return self._update_typed(SPACE_BUTTONS, sha256_hash, merge, Button)

    def get_host(self, hostname: str) -> Host | None:
        data = self.get(SPACE_HOSTS, hostname)
        return Host.from_dict(data) if data is not None else None

    def update_host(
        self, hostname: str, merge: Callable[[Host | None], Host | None]
    ) -> Host | None:
        """Update or create the host keyed by a hostname."""
        return self._update_typed(SPACE_HOSTS, hostname, merge, Host)

    def get_all(self) -> ButtonDB:
        """Return a full snapshot copy of both record spaces.

        Raises:
            StoreError: If the backend scan fails.
        """
        try:
            buttons = self.backend.scan(SPACE_BUTTONS)
            hosts = self.backend.scan(SPACE_HOSTS)
        except psycopg2.Error as e:
            raise StoreError(f"Failed to export snapshot: {e}") from e

        return ButtonDB(
            hosts={key: Host.from_dict(copy.deepcopy(value)) for key, value in hosts.items()},
            buttons={
                key: Button.from_dict(copy.deepcopy(value)) for key, value in buttons.items()
            },
        )


def create_store(backend_name: str, page_workers: int | None = None) -> ButtonStore:
    """Build a store for a configured backend name ("postgres" or "memory").

    Args:
        backend_name: Configured STORE_BACKEND value.
        page_workers: Page tasks that will write at once; sizes the Postgres pool.
    """
    if backend_name == "memory":
        return ButtonStore(MemoryRecordBackend())
    if backend_name == "postgres":
        from storage.db import pool_size_for

        return ButtonStore(PostgresRecordBackend(max_connections=pool_size_for(page_workers)))
    raise ValueError(f"Unknown store backend: {backend_name!r}")
