"""Persistence for pairing codes.

The relay keeps a single table of ``(pushtoken, code, created)`` rows.  Rows
older than the code lifetime are swept every time a new row is inserted, so
the table never grows beyond the codes issued in the last few minutes.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Final, Protocol

from .errors import StoreError
from .models import CODE_LIFETIME, PairingCode

__all__ = ["CodeStore", "InMemoryCodeStore", "SQLiteCodeStore", "open_code_store"]

logger = logging.getLogger(__name__)


class CodeStore(Protocol):
    async def insert(self, pushtoken: str, code: str) -> PairingCode: ...
    async def find_by_code(self, code: str) -> PairingCode | None: ...
    async def delete_by_code(self, code: str) -> int: ...
    async def take_by_code(self, code: str) -> PairingCode | None: ...
    async def sweep_older_than(self, age: timedelta) -> int: ...
    def close(self) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class InMemoryCodeStore:
    """Process-local store, selected with the ``memory://`` database url."""

    def __init__(
        self,
        *,
        lifetime: timedelta = CODE_LIFETIME,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._rows: list[PairingCode] = []
        self._next_id = 1
        self._lifetime = lifetime
        self._clock = clock

    @property
    def rows(self) -> list[PairingCode]:
        return list(self._rows)

    async def insert(self, pushtoken: str, code: str) -> PairingCode:
        row = PairingCode(id=self._next_id, pushtoken=pushtoken, code=code, created=self._clock())
        self._next_id += 1
        self._rows.append(row)
        await self.sweep_older_than(self._lifetime)
        return row

    async def find_by_code(self, code: str) -> PairingCode | None:
        for row in reversed(self._rows):
            if row.code == code:
                return row
        return None

    async def delete_by_code(self, code: str) -> int:
        before = len(self._rows)
        self._rows = [row for row in self._rows if row.code != code]
        return before - len(self._rows)

    async def take_by_code(self, code: str) -> PairingCode | None:
        row = await self.find_by_code(code)
        if row is not None:
            self._rows.remove(row)
        return row

    async def sweep_older_than(self, age: timedelta) -> int:
        now = self._clock()
        before = len(self._rows)
        self._rows = [row for row in self._rows if not row.is_expired(lifetime=age, moment=now)]
        removed = before - len(self._rows)
        if removed:
            logger.debug("swept %d expired pairing codes", removed)
        return removed

    def close(self) -> None:
        self._rows.clear()


class SQLiteCodeStore:
    """SQLite-backed code store.

    Expiry is enforced inside the database: an ``AFTER INSERT`` trigger deletes
    rows older than the lifetime whenever a code is inserted.  All statements
    run on a worker thread so the event loop is never blocked on disk I/O.
    """

    _TABLE: Final[str] = """
    CREATE TABLE IF NOT EXISTS codes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        pushtoken TEXT NOT NULL,
        code TEXT NOT NULL,
        created TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE INDEX IF NOT EXISTS idx_codes_code ON codes(code);
    CREATE INDEX IF NOT EXISTS idx_codes_created ON codes(created);
    """

    _TRIGGER: Final[str] = """
    DROP TRIGGER IF EXISTS old_rows_gc;
    CREATE TRIGGER old_rows_gc AFTER INSERT ON codes
    BEGIN
        DELETE FROM codes WHERE created < datetime('now', '-{seconds} seconds');
    END;
    """

    _COLUMNS: Final[str] = "id, pushtoken, code, created"

    def __init__(self, db_path: str | Path, *, lifetime: timedelta = CODE_LIFETIME) -> None:
        self._path = str(db_path)
        if self._path != ":memory:":
            parent = Path(self._path).parent
            if not parent.exists():
                parent.mkdir(parents=True, exist_ok=True)
        self._lifetime = lifetime
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    @classmethod
    def from_url(cls, database_url: str, *, lifetime: timedelta = CODE_LIFETIME) -> "SQLiteCodeStore":
        return cls(sqlite_path_from_url(database_url), lifetime=lifetime)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _ensure_schema(self) -> None:
        seconds = int(self._lifetime.total_seconds())
        self._conn.executescript(self._TABLE)
        self._conn.executescript(self._TRIGGER.format(seconds=seconds))

    @staticmethod
    def _row(row: sqlite3.Row | None) -> PairingCode | None:
        if row is None:
            return None
        created = datetime.fromisoformat(row["created"]).replace(tzinfo=timezone.utc)
        return PairingCode(id=row["id"], pushtoken=row["pushtoken"], code=row["code"], created=created)

    async def _run(self, fn: Callable[[sqlite3.Connection], object]) -> object:
        def call() -> object:
            with self._lock:
                return fn(self._conn)

        try:
            return await asyncio.to_thread(call)
        except sqlite3.Error as exc:
            raise StoreError(detail=str(exc)) from exc

    async def insert(self, pushtoken: str, code: str) -> PairingCode:
        def op(conn: sqlite3.Connection) -> PairingCode | None:
            cur = conn.execute(
                f"INSERT INTO codes (pushtoken, code) VALUES (?, ?) RETURNING {self._COLUMNS}",
                (pushtoken, code),
            )
            rows = cur.fetchall()
            return self._row(rows[0] if rows else None)

        return await self._run(op)  # type: ignore[return-value]

    async def find_by_code(self, code: str) -> PairingCode | None:
        def op(conn: sqlite3.Connection) -> PairingCode | None:
            cur = conn.execute(
                f"SELECT {self._COLUMNS} FROM codes WHERE code = ? ORDER BY id DESC LIMIT 1",
                (code,),
            )
            return self._row(cur.fetchone())

        return await self._run(op)  # type: ignore[return-value]

    async def delete_by_code(self, code: str) -> int:
        return await self._run(lambda conn: conn.execute("DELETE FROM codes WHERE code = ?", (code,)).rowcount)  # type: ignore[return-value]

    async def take_by_code(self, code: str) -> PairingCode | None:
        def op(conn: sqlite3.Connection) -> PairingCode | None:
            cur = conn.execute(
                f"""
                DELETE FROM codes
                WHERE id = (SELECT id FROM codes WHERE code = ? ORDER BY id DESC LIMIT 1)
                RETURNING {self._COLUMNS}
                """,
                (code,),
            )
            rows = cur.fetchall()
            return self._row(rows[0] if rows else None)

        return await self._run(op)  # type: ignore[return-value]

    async def sweep_older_than(self, age: timedelta) -> int:
        modifier = f"-{int(age.total_seconds())} seconds"
        removed = await self._run(
            lambda conn: conn.execute("DELETE FROM codes WHERE created < datetime('now', ?)", (modifier,)).rowcount
        )
        if removed:
            logger.debug("swept %d expired pairing codes", removed)
        return removed  # type: ignore[return-value]


def sqlite_path_from_url(database_url: str) -> str:
    """Accept ``sqlite:///relative.db``, ``sqlite:////abs/path.db``, ``sqlite://:memory:`` or a bare path."""
    url = database_url.strip()
    if not url:
        raise ValueError("database url is empty")
    if "://" not in url:
        return url
    scheme, _, rest = url.partition("://")
    if scheme != "sqlite":
        raise ValueError(f"unsupported database scheme: {scheme}")
    if rest in (":memory:", "/:memory:"):
        return ":memory:"
    if not rest.startswith("/"):
        raise ValueError(f"invalid sqlite url: {database_url}")
    path = rest[1:]
    if not path:
        raise ValueError(f"sqlite url has no path: {database_url}")
    return path


def open_code_store(database_url: str, *, lifetime: timedelta = CODE_LIFETIME) -> CodeStore:
    if database_url.strip() == "memory://":
        return InMemoryCodeStore(lifetime=lifetime)
    return SQLiteCodeStore.from_url(database_url, lifetime=lifetime)
