import os
import sqlite3
import time
from pathlib import Path

import pytest

from store import database
from store.database import initialize_database, open_connection, release
from store.errors import (
    DecodeError,
    ExecutionError,
    StatementError,
    StoreConnectionError,
    StoreCreationError,
)
from store.repository import (
    HashRecord,
    HashRepository,
    count_hashes,
    fetch_hash,
    lookup_hash,
    save_hash,
)

KEY = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdef"

# helpers keep using the unpatched connect while tests swap in tracking factories
_real_connect = sqlite3.connect


def _raw_rows(db_path: Path) -> list[tuple[object, ...]]:
    connection = _real_connect(str(db_path))
    try:
        return connection.execute(
            "SELECT hash, filename, lastChecked FROM fileHash ORDER BY hash"
        ).fetchall()
    finally:
        connection.close()


def _raw_execute(db_path: Path, sql: str, parameters: tuple[object, ...] = ()) -> None:
    connection = _real_connect(str(db_path))
    try:
        connection.execute(sql, parameters)
        connection.commit()
    finally:
        connection.close()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "db.sqlite"
    initialize_database(path)
    return path


class TestInitializeDatabase:
    def test_creates_file_and_table(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "db.sqlite"
        handle = initialize_database(path)

        assert handle.created is True
        assert handle.path == path
        assert path.exists()
        assert _raw_rows(path) == []

    def test_second_call_keeps_existing_rows(self, db_path: Path) -> None:
        save_hash(db_path, KEY, KEY + ".temp", checked_at=1_700_000_000)

        handle = initialize_database(db_path)

        assert handle.created is False
        assert _raw_rows(db_path) == [(KEY, KEY + ".temp", 1_700_000_000)]

    def test_zero_byte_file_is_treated_as_new(self, tmp_path: Path) -> None:
        path = tmp_path / "db.sqlite"
        path.touch()

        handle = initialize_database(path)

        assert handle.created is True
        assert lookup_hash(path, KEY) is False

    def test_existing_file_schema_is_not_verified(self, tmp_path: Path) -> None:
        path = tmp_path / "other.sqlite"
        _raw_execute(path, "CREATE TABLE unrelated (id INTEGER)")

        handle = initialize_database(path)

        assert handle.created is False
        with pytest.raises(StatementError):
            lookup_hash(path, KEY)

    def test_unwritable_location_raises_creation_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StoreCreationError):
            initialize_database(blocker / "db.sqlite")


class TestLookupAndSave:
    def test_lookup_save_lookup_scenario(self, db_path: Path) -> None:
        assert lookup_hash(db_path, KEY) is False

        save_hash(db_path, KEY, KEY + ".temp")

        assert lookup_hash(db_path, KEY) is True
        assert count_hashes(db_path) == 1

    def test_save_overwrites_existing_row(self, db_path: Path) -> None:
        save_hash(db_path, "K", "a.temp", checked_at=100)
        save_hash(db_path, "K", "b.temp", checked_at=200)

        assert count_hashes(db_path) == 1
        assert fetch_hash(db_path, "K") == HashRecord(hash="K", filename="b.temp", last_checked=200)

    def test_repeated_saves_never_duplicate_keys(self, db_path: Path) -> None:
        keys = ["a", "b", "a", "c", "b", "a"]
        for index, key in enumerate(keys):
            save_hash(db_path, key, f"{key}-{index}.temp", checked_at=index)

        rows = _raw_rows(db_path)
        assert [row[0] for row in rows] == ["a", "b", "c"]
        assert rows[0] == ("a", "a-5.temp", 5)
        assert count_hashes(db_path) == 3

    def test_save_stamps_current_time(self, db_path: Path) -> None:
        before = int(time.time())
        save_hash(db_path, KEY, "x.temp")
        after = int(time.time())

        record = fetch_hash(db_path, KEY)
        assert record is not None
        assert before <= record.last_checked <= after

    def test_fetch_missing_returns_none(self, db_path: Path) -> None:
        assert fetch_hash(db_path, "missing") is None

    def test_null_filename_is_allowed(self, db_path: Path) -> None:
        _raw_execute(db_path, "INSERT INTO fileHash VALUES (?, NULL, ?)", (KEY, 5))

        record = fetch_hash(db_path, KEY)

        assert record == HashRecord(hash=KEY, filename=None, last_checked=5)


class TestHashRepository:
    def test_uses_injected_clock(self, tmp_path: Path) -> None:
        handle = initialize_database(tmp_path / "db.sqlite")
        repo = HashRepository(handle, clock=lambda: 1234.9)

        written = repo.save(KEY, "a.temp")

        assert written == 1234
        assert repo.lookup(KEY) is True
        record = repo.fetch(KEY)
        assert record is not None
        assert record.last_checked == 1234
        assert repo.count() == 1

    def test_accepts_plain_path(self, db_path: Path) -> None:
        repo = HashRepository(str(db_path))
        assert repo.db_path == db_path
        assert repo.lookup(KEY) is False


class TestErrors:
    def test_missing_store_is_connection_error(self, tmp_path: Path) -> None:
        path = tmp_path / "absent.sqlite"

        with pytest.raises(StoreConnectionError):
            lookup_hash(path, KEY)
        with pytest.raises(StoreConnectionError):
            save_hash(path, KEY, "a.temp")
        assert not path.exists()

    def test_missing_table_is_statement_error(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.sqlite"
        _raw_execute(path, "CREATE TABLE unrelated (id INTEGER)")

        with pytest.raises(StatementError):
            save_hash(path, KEY, "a.temp")
        with pytest.raises(StatementError):
            count_hashes(path)

    def test_unbindable_value_is_statement_error(self, db_path: Path) -> None:
        with pytest.raises(StatementError):
            save_hash(db_path, KEY, object())  # type: ignore[arg-type]
        assert count_hashes(db_path) == 0

    def test_unencodable_key_is_statement_error(self, db_path: Path) -> None:
        with pytest.raises(StatementError):
            lookup_hash(db_path, "\udcff")
        with pytest.raises(StatementError):
            save_hash(db_path, "\udcff", "a.temp")
        assert count_hashes(db_path) == 0

    def test_out_of_range_timestamp_is_statement_error(self, db_path: Path) -> None:
        with pytest.raises(StatementError):
            save_hash(db_path, "K", "K.temp", checked_at=2**64)
        assert count_hashes(db_path) == 0

    def test_corrupt_file_is_execution_error(self, tmp_path: Path) -> None:
        path = tmp_path / "garbage.sqlite"
        path.write_bytes(b"x" * 512)

        with pytest.raises(ExecutionError):
            lookup_hash(path, KEY)

    @pytest.mark.parametrize("last_checked", ["yesterday", None, 1.5])
    def test_malformed_row_is_decode_error(self, db_path: Path, last_checked: object) -> None:
        _raw_execute(db_path, "INSERT INTO fileHash VALUES (?, ?, ?)", (KEY, "a.temp", last_checked))

        with pytest.raises(DecodeError):
            lookup_hash(db_path, KEY)

    def test_from_row_rejects_wrong_column_count(self) -> None:
        with pytest.raises(DecodeError):
            HashRecord.from_row((KEY, "a.temp"))

    def test_failed_save_keeps_previous_row(self, db_path: Path) -> None:
        save_hash(db_path, KEY, "old.temp", checked_at=10)

        locker = sqlite3.connect(str(db_path), isolation_level=None)
        try:
            locker.execute("BEGIN EXCLUSIVE")
            with pytest.raises(ExecutionError):
                save_hash(db_path, KEY, "new.temp", checked_at=20, timeout=0.05)
        finally:
            locker.execute("ROLLBACK")
            locker.close()

        assert fetch_hash(db_path, KEY) == HashRecord(hash=KEY, filename="old.temp", last_checked=10)


@pytest.fixture
def tracked(monkeypatch: pytest.MonkeyPatch) -> dict[str, list]:
    handles: dict[str, list] = {"connections": [], "cursors": []}
    real_connect = sqlite3.connect

    class TrackingCursor(sqlite3.Cursor):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.released = False
            handles["cursors"].append(self)

        def close(self):
            self.released = True
            super().close()

    class TrackingConnection(sqlite3.Connection):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.released = False
            handles["connections"].append(self)

        def cursor(self, *args, **kwargs):
            return super().cursor(TrackingCursor)

        def close(self):
            self.released = True
            super().close()

    def connect(*args, **kwargs):
        kwargs["factory"] = TrackingConnection
        return real_connect(*args, **kwargs)

    monkeypatch.setattr(database.sqlite3, "connect", connect)
    return handles


class TestResourceRelease:
    def test_every_handle_is_closed(self, tmp_path: Path, tracked: dict[str, list]) -> None:
        path = tmp_path / "db.sqlite"
        initialize_database(path)
        initialize_database(path)
        lookup_hash(path, KEY)
        save_hash(path, KEY, "a.temp")
        lookup_hash(path, KEY)
        count_hashes(path)

        assert len(tracked["connections"]) == 6
        assert all(conn.released for conn in tracked["connections"])
        assert tracked["cursors"]
        assert all(cursor.released for cursor in tracked["cursors"])

    def test_handles_closed_on_error_paths(self, tmp_path: Path, tracked: dict[str, list]) -> None:
        no_table = tmp_path / "no_table.sqlite"
        _raw_execute(no_table, "CREATE TABLE unrelated (id INTEGER)")
        tracked["connections"].clear()
        with pytest.raises(StatementError):
            lookup_hash(no_table, KEY)
        with pytest.raises(StatementError):
            save_hash(no_table, KEY, "a.temp")

        db_path = tmp_path / "db.sqlite"
        initialize_database(db_path)
        _raw_execute(db_path, "INSERT INTO fileHash VALUES (?, ?, ?)", (KEY, "a.temp", "bad"))
        with pytest.raises(DecodeError):
            lookup_hash(db_path, KEY)

        assert tracked["connections"]
        assert all(conn.released for conn in tracked["connections"])
        assert all(cursor.released for cursor in tracked["cursors"])

    def test_close_failure_does_not_mask_statement_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "no_table.sqlite"
        _raw_execute(path, "CREATE TABLE unrelated (id INTEGER)")
        real_connect = sqlite3.connect

        class FailingClose(sqlite3.Connection):
            def close(self):
                super().close()
                raise sqlite3.OperationalError("close failed")

        def connect(*args, **kwargs):
            kwargs["factory"] = FailingClose
            return real_connect(*args, **kwargs)

        monkeypatch.setattr(database.sqlite3, "connect", connect)

        with caplog.at_level("ERROR", logger="store.database"):
            with pytest.raises(StatementError):
                lookup_hash(path, KEY)

        assert "Could not close the database" in caplog.text

    def test_release_logs_instead_of_raising(self, caplog: pytest.LogCaptureFixture) -> None:
        class Broken:
            def close(self) -> None:
                raise sqlite3.ProgrammingError("already gone")

        with caplog.at_level("ERROR", logger="store.database"):
            release(Broken(), "cursor")

        assert "Could not close the cursor" in caplog.text

    def test_open_connection_closes_when_body_raises(self, db_path: Path, tracked: dict[str, list]) -> None:
        with pytest.raises(RuntimeError):
            with open_connection(db_path):
                raise RuntimeError("boom")

        assert len(tracked["connections"]) == 1
        assert tracked["connections"][0].released

    @pytest.mark.skipif(not Path("/proc/self/fd").is_dir(), reason="needs /proc/self/fd")
    def test_descriptor_count_returns_to_baseline(self, db_path: Path) -> None:
        repo = HashRepository(db_path)
        repo.lookup(KEY)
        baseline = len(os.listdir("/proc/self/fd"))

        for index in range(500):
            key = f"key-{index:05d}"
            repo.lookup(key)
            repo.save(key, key + ".temp")

        assert len(os.listdir("/proc/self/fd")) == baseline
        assert repo.count() == 500
