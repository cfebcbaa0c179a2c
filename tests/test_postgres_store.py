from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone

import psycopg
import pytest

import bitespeed.identity.repository.postgres as postgres_module
from bitespeed.identity.errors import StorageFailure
from bitespeed.identity.models import Contact, LinkPrecedence
from bitespeed.identity.repository import PostgresContactStore

CREATED = datetime(2023, 4, 1, tzinfo=timezone.utc)


def _row(contact_id, email, phone, *, linked_id=None, precedence="primary"):
    return {
        "id": contact_id,
        "email": email,
        "phone_number": phone,
        "linked_id": linked_id,
        "link_precedence": precedence,
        "created_at": CREATED,
        "updated_at": CREATED,
        "deleted_at": None,
    }


class DummyCursor:
    def __init__(self, conn: "DummyConn") -> None:
        self.conn = conn
        self._results: list[dict] = []

    def __enter__(self) -> "DummyCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def execute(self, query, params=None):
        self.conn.executed.append((" ".join(query.split()), params))
        if self.conn.fail_on and self.conn.fail_on in query:
            raise psycopg.OperationalError("connection reset")
        self._results = list(self.conn.results.pop(0)) if self.conn.results else []

    def fetchall(self):
        return self._results

    def fetchone(self):
        return self._results[0] if self._results else None


class DummyConn:
    def __init__(self, results=None, fail_on: str | None = None) -> None:
        self.results = list(results or [])
        self.fail_on = fail_on
        self.executed: list[tuple[str, object]] = []
        self.transactions = 0
        self.committed = 0
        self.row_factory = None

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield
        self.committed += 1

    def cursor(self, row_factory=None):
        self.row_factory = row_factory
        return DummyCursor(self)


@pytest.fixture
def install_conn(monkeypatch):
    opened: list[tuple[str, bool]] = []

    def _install(conn: DummyConn) -> list[tuple[str, bool]]:
        @contextmanager
        def fake_get_connection(conn_str=None, autocommit=True):
            opened.append((conn_str, autocommit))
            yield conn

        monkeypatch.setattr(postgres_module, "get_connection", fake_get_connection)
        return opened

    return _install


def _store() -> PostgresContactStore:
    return PostgresContactStore("postgresql://test", lock_timeout_ms=250, statement_timeout_ms=1000)


def test_session_sets_timeouts_and_takes_sorted_advisory_locks(install_conn):
    # set_config and each advisory lock consume one (empty) result set.
    conn = DummyConn(results=[[], [], []])
    opened = install_conn(conn)

    with _store().session(lock_keys=["phone:2", "email:a@x.com", "phone:2"]):
        pass

    assert opened == [("postgresql://test", False)]
    assert conn.transactions == 1 and conn.committed == 1
    statements = [sql for sql, _ in conn.executed]
    assert "set_config('lock_timeout'" in statements[0]
    assert conn.executed[0][1] == ("250ms", "1000ms")
    assert statements[1:] == ["SELECT pg_advisory_xact_lock(hashtext(%s))"] * 2
    assert [params for _, params in conn.executed[1:]] == [("email:a@x.com",), ("phone:2",)]


def test_find_builds_or_query_ordered_by_creation(install_conn):
    conn = DummyConn(results=[[], [_row(1, "a@x.com", "1"), _row(2, "b@x.com", "2")]])
    install_conn(conn)

    with _store().session() as session:
        found = session.find(email="a@x.com", phone_number="2")

    sql, params = conn.executed[-1]
    assert "WHERE email = %s OR phone_number = %s" in sql
    assert sql.endswith("ORDER BY created_at ASC, id ASC")
    assert params == ["a@x.com", "2"]
    assert [contact.id for contact in found] == [1, 2]
    assert found[0].link_precedence == LinkPrecedence.PRIMARY


def test_find_without_criteria_skips_the_query(install_conn):
    conn = DummyConn(results=[[]])
    install_conn(conn)

    with _store().session() as session:
        assert session.find() == []

    assert len(conn.executed) == 1


def test_insert_casts_link_precedence_and_returns_stored_row(install_conn):
    conn = DummyConn(results=[[], [_row(5, "a@x.com", "1", linked_id=3, precedence="secondary")]])
    install_conn(conn)

    with _store().session() as session:
        saved = session.save(
            Contact(
                email="a@x.com",
                phone_number="1",
                linked_id=3,
                link_precedence=LinkPrecedence.SECONDARY,
            )
        )

    sql, params = conn.executed[-1]
    assert sql.startswith("INSERT INTO contacts")
    assert "%(link_precedence)s::contact_link_precedence" in sql
    assert params["link_precedence"] == "secondary"
    assert saved.id == 5
    assert saved.linked_id == 3
    assert saved.created_at == CREATED


def test_update_of_missing_row_is_a_storage_failure(install_conn):
    conn = DummyConn(results=[[], []])
    install_conn(conn)

    with pytest.raises(StorageFailure):
        with _store().session() as session:
            session.save(Contact(id=9, email="a@x.com", phone_number="1"))

    sql, params = conn.executed[-1]
    assert sql.startswith("UPDATE contacts")
    assert "updated_at = NOW()" in sql
    assert "created_at" not in sql.split("RETURNING")[0]
    assert params["id"] == 9
    assert conn.committed == 0


def test_driver_errors_become_storage_failures(install_conn):
    conn = DummyConn(results=[[]], fail_on="FROM contacts")
    install_conn(conn)

    with pytest.raises(StorageFailure) as excinfo:
        with _store().session() as session:
            session.find(email="a@x.com")

    assert isinstance(excinfo.value.__cause__, psycopg.Error)


def test_lock_timeout_becomes_storage_failure(install_conn):
    conn = DummyConn(fail_on="pg_advisory_xact_lock")
    install_conn(conn)

    with pytest.raises(StorageFailure):
        with _store().session(lock_keys=["email:a@x.com"]):
            pass


def test_ensure_schema_runs_ddl_in_autocommit(install_conn):
    conn = DummyConn(results=[[]])
    opened = install_conn(conn)

    _store().ensure_schema()

    assert opened == [("postgresql://test", True)]
    sql, _ = conn.executed[0]
    assert "CREATE TABLE IF NOT EXISTS contacts" in sql
    assert "CREATE TYPE contact_link_precedence" in sql


def test_session_lock_takes_cluster_locks_mid_transaction(install_conn):
    conn = DummyConn(results=[[], [], []])
    install_conn(conn)

    with _store().session() as session:
        session.lock(key for key in ["contact:12", "contact:3", "contact:12"])

    assert [params for _, params in conn.executed[1:]] == [("contact:12",), ("contact:3",)]
    assert all(sql == "SELECT pg_advisory_xact_lock(hashtext(%s))" for sql, _ in conn.executed[1:])
    assert conn.committed == 1


def test_cluster_lock_timeout_is_a_storage_failure(install_conn):
    conn = DummyConn(results=[[]], fail_on="pg_advisory_xact_lock")
    install_conn(conn)

    with pytest.raises(StorageFailure):
        with _store().session() as session:
            session.lock(["contact:1"])

    assert conn.committed == 0
