from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Sequence

import psycopg
from psycopg.rows import dict_row

from shared.db import get_connection
from shared.logging import get_logger

from ..errors import StorageFailure
from ..models import Contact
from .base import ContactSession, ContactStore, has_criteria

logger = get_logger("identity.repository.postgres")

_COLUMNS = "id, email, phone_number, linked_id, link_precedence, created_at, updated_at, deleted_at"

# Only these columns may appear in a find() predicate.
_CRITERIA_COLUMNS = ("email", "phone_number", "id", "linked_id")

CONTACTS_DDL = """
DO $$
BEGIN
    CREATE TYPE contact_link_precedence AS ENUM ('primary', 'secondary');
EXCEPTION
    WHEN duplicate_object THEN NULL;
END
$$;

CREATE TABLE IF NOT EXISTS contacts (
    id SERIAL PRIMARY KEY,
    email VARCHAR NULL,
    phone_number VARCHAR NULL,
    linked_id INTEGER NULL REFERENCES contacts (id),
    link_precedence contact_link_precedence NOT NULL DEFAULT 'secondary',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    deleted_at TIMESTAMPTZ NULL
);

CREATE INDEX IF NOT EXISTS contacts_email_idx ON contacts (email);
CREATE INDEX IF NOT EXISTS contacts_phone_number_idx ON contacts (phone_number);
CREATE INDEX IF NOT EXISTS contacts_linked_id_idx ON contacts (linked_id);
"""


def _contact_from_row(row: Dict[str, Any]) -> Contact:
    return Contact(**row)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except psycopg.Error as exc:
        raise StorageFailure(f"{operation} failed: {exc}") from exc


def _advisory_lock(cur: psycopg.Cursor[Any], keys: Iterable[str]) -> None:
    for key in sorted(set(keys)):
        cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (key,))


class PostgresContactStore(ContactStore):
    """Postgres-backed contact store.

    Each session is one connection and one transaction. Lock keys are taken as
    transaction-scoped advisory locks, so they are released on commit or rollback.
    """

    def __init__(
        self,
        conn_str: str,
        *,
        lock_timeout_ms: int = 5000,
        statement_timeout_ms: int = 15000,
    ) -> None:
        self._conn_str = conn_str
        self._lock_timeout_ms = lock_timeout_ms
        self._statement_timeout_ms = statement_timeout_ms

    @contextmanager
    def session(self, lock_keys: Sequence[str] = ()) -> Iterator[ContactSession]:
        with _translate_errors("contact session"):
            with get_connection(self._conn_str, autocommit=False) as conn:
                with conn.transaction():
                    with conn.cursor(row_factory=dict_row) as cur:
                        cur.execute(
                            "SELECT set_config('lock_timeout', %s, true), set_config('statement_timeout', %s, true)",
                            (f"{self._lock_timeout_ms}ms", f"{self._statement_timeout_ms}ms"),
                        )
                        _advisory_lock(cur, lock_keys)
                        yield _PostgresSession(cur)

    def ensure_schema(self) -> None:
        with _translate_errors("ensure schema"):
            with get_connection(self._conn_str, autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.execute(CONTACTS_DDL)
        logger.info("contacts_schema_ready")


class _PostgresSession(ContactSession):
    def __init__(self, cur: psycopg.Cursor[Dict[str, Any]]) -> None:
        self._cur = cur

    def find(
        self,
        *,
        email: str | None = None,
        phone_number: str | None = None,
        id: int | None = None,
        linked_id: int | None = None,
    ) -> list[Contact]:
        criteria = {"email": email, "phone_number": phone_number, "id": id, "linked_id": linked_id}
        if not has_criteria(**criteria):
            return []
        clauses: list[str] = []
        params: list[object] = []
        for column in _CRITERIA_COLUMNS:
            value = criteria[column]
            if value is None:
                continue
            clauses.append(f"{column} = %s")
            params.append(value)
        query = f"""
            SELECT {_COLUMNS}
            FROM contacts
            WHERE {" OR ".join(clauses)}
            ORDER BY created_at ASC, id ASC
        """
        with _translate_errors("find contacts"):
            self._cur.execute(query, params)
            rows = self._cur.fetchall()
        return [_contact_from_row(row) for row in rows]

    def lock(self, keys: Iterable[str]) -> None:
        # Read committed: statements after the lock see the previous holder's commit.
        with _translate_errors("lock contacts"):
            _advisory_lock(self._cur, keys)

    def find_one(self, contact_id: int) -> Contact | None:
        with _translate_errors("find contact"):
            self._cur.execute(f"SELECT {_COLUMNS} FROM contacts WHERE id = %s", (contact_id,))
            row = self._cur.fetchone()
        return _contact_from_row(row) if row else None

    def save(self, contact: Contact) -> Contact:
        params = {
            "id": contact.id,
            "email": contact.email,
            "phone_number": contact.phone_number,
            "linked_id": contact.linked_id,
            "link_precedence": contact.link_precedence.value,
        }
        if contact.id is None:
            query = f"""
                INSERT INTO contacts (email, phone_number, linked_id, link_precedence)
                VALUES (%(email)s, %(phone_number)s, %(linked_id)s, %(link_precedence)s::contact_link_precedence)
                RETURNING {_COLUMNS}
            """
        else:
            query = f"""
                UPDATE contacts
                SET email = %(email)s,
                    phone_number = %(phone_number)s,
                    linked_id = %(linked_id)s,
                    link_precedence = %(link_precedence)s::contact_link_precedence,
                    updated_at = NOW()
                WHERE id = %(id)s
                RETURNING {_COLUMNS}
            """
        with _translate_errors("save contact"):
            self._cur.execute(query, params)
            row = self._cur.fetchone()
        if row is None:
            raise StorageFailure(f"Contact {contact.id} does not exist")
        return _contact_from_row(row)


__all__ = ["CONTACTS_DDL", "PostgresContactStore"]
