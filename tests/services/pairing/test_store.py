from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from caxton.services.pairing import InMemoryCodeStore, SQLiteCodeStore, StoreError
from caxton.services.pairing.store import open_code_store, sqlite_path_from_url


@pytest.fixture()
def sqlite_store(tmp_path):
    store = SQLiteCodeStore(tmp_path / "codes.sqlite")
    yield store
    store.close()


def _insert_aged(store: SQLiteCodeStore, pushtoken: str, code: str, minutes: int) -> None:
    store.connection.execute(
        "INSERT INTO codes (pushtoken, code, created) VALUES (?, ?, datetime('now', ?))",
        (pushtoken, code, f"-{minutes} minutes"),
    )


@pytest.mark.anyio
async def test_sqlite_insert_and_find(sqlite_store):
    row = await sqlite_store.insert("push-1", "abcde")
    assert row.pushtoken == "push-1"
    assert row.code == "abcde"
    assert row.created.tzinfo is not None
    found = await sqlite_store.find_by_code("abcde")
    assert found == row


@pytest.mark.anyio
async def test_sqlite_find_prefers_most_recent_on_collision(sqlite_store):
    await sqlite_store.insert("older", "zzzzz")
    await sqlite_store.insert("newer", "zzzzz")
    found = await sqlite_store.find_by_code("zzzzz")
    assert found is not None
    assert found.pushtoken == "newer"


@pytest.mark.anyio
async def test_sqlite_insert_sweeps_rows_past_lifetime(sqlite_store):
    _insert_aged(sqlite_store, "stale", "old01", minutes=20)
    _insert_aged(sqlite_store, "recent", "new01", minutes=5)
    await sqlite_store.insert("push-2", "fresh")
    assert await sqlite_store.find_by_code("old01") is None
    assert await sqlite_store.find_by_code("new01") is not None


@pytest.mark.anyio
async def test_sqlite_sweep_older_than(sqlite_store):
    _insert_aged(sqlite_store, "a", "aaaaa", minutes=10)
    _insert_aged(sqlite_store, "b", "bbbbb", minutes=1)
    removed = await sqlite_store.sweep_older_than(timedelta(minutes=5))
    assert removed == 1
    assert await sqlite_store.find_by_code("aaaaa") is None


@pytest.mark.anyio
async def test_sqlite_take_is_single_use(sqlite_store):
    await sqlite_store.insert("push-3", "qwert")
    taken = await sqlite_store.take_by_code("qwert")
    assert taken is not None
    assert taken.pushtoken == "push-3"
    assert await sqlite_store.take_by_code("qwert") is None
    assert await sqlite_store.find_by_code("qwert") is None


@pytest.mark.anyio
async def test_sqlite_take_removes_only_latest_collision(sqlite_store):
    await sqlite_store.insert("first", "ccccc")
    await sqlite_store.insert("second", "ccccc")
    taken = await sqlite_store.take_by_code("ccccc")
    assert taken.pushtoken == "second"
    remaining = await sqlite_store.find_by_code("ccccc")
    assert remaining.pushtoken == "first"


@pytest.mark.anyio
async def test_sqlite_delete_by_code(sqlite_store):
    await sqlite_store.insert("x", "ddddd")
    await sqlite_store.insert("y", "ddddd")
    assert await sqlite_store.delete_by_code("ddddd") == 2
    assert await sqlite_store.delete_by_code("ddddd") == 0


@pytest.mark.anyio
async def test_sqlite_errors_surface_as_store_error(sqlite_store):
    sqlite_store.connection.execute("DROP TABLE codes")
    with pytest.raises(StoreError):
        await sqlite_store.find_by_code("abcde")


def test_schema_survives_reopen(tmp_path):
    path = tmp_path / "codes.sqlite"
    SQLiteCodeStore(path).close()
    store = SQLiteCodeStore(path)
    names = {
        row["name"]
        for row in store.connection.execute("SELECT name FROM sqlite_master WHERE type IN ('table', 'trigger')")
    }
    store.close()
    assert {"codes", "old_rows_gc"} <= names


@pytest.mark.anyio
async def test_memory_store_sweeps_on_insert():
    now = [datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)]
    store = InMemoryCodeStore(clock=lambda: now[0])
    await store.insert("early", "aaaaa")
    now[0] += timedelta(minutes=16)
    await store.insert("late", "bbbbb")
    assert [row.code for row in store.rows] == ["bbbbb"]


@pytest.mark.anyio
async def test_memory_store_keeps_row_exactly_at_lifetime():
    now = [datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)]
    store = InMemoryCodeStore(clock=lambda: now[0])
    row = await store.insert("edge", "ccccc")
    now[0] += timedelta(minutes=15)
    assert not row.is_expired(moment=now[0])
    assert await store.sweep_older_than(timedelta(minutes=15)) == 0
    now[0] += timedelta(seconds=1)
    assert row.is_expired(moment=now[0])
    assert await store.sweep_older_than(timedelta(minutes=15)) == 1


@pytest.mark.anyio
async def test_memory_store_take_and_collisions():
    store = InMemoryCodeStore()
    await store.insert("one", "samec")
    await store.insert("two", "samec")
    assert (await store.find_by_code("samec")).pushtoken == "two"
    assert (await store.take_by_code("samec")).pushtoken == "two"
    assert (await store.take_by_code("samec")).pushtoken == "one"
    assert await store.take_by_code("samec") is None


@pytest.mark.parametrize(
    "url, expected",
    [
        ("sqlite:///codes.db", "codes.db"),
        ("sqlite:////var/lib/caxton/codes.db", "/var/lib/caxton/codes.db"),
        ("sqlite://:memory:", ":memory:"),
        ("data/codes.db", "data/codes.db"),
    ],
)
def test_sqlite_path_from_url(url, expected):
    assert sqlite_path_from_url(url) == expected


def test_unsupported_database_url():
    with pytest.raises(ValueError):
        sqlite_path_from_url("postgres://localhost/caxton")


def test_open_code_store_memory_url():
    assert isinstance(open_code_store("memory://"), InMemoryCodeStore)
