"""
Unit tests for tbl_users reads and writes through the replica router.
"""

import uuid
from datetime import datetime, timezone

import pytest
from psycopg2 import sql

from config.db_router import Operation, Read
from partition_demo import identifiers
from partition_demo.errors import SourceUnavailable
from partition_demo.storage import users


@pytest.fixture
def captured_inserts(monkeypatch):
    calls = []

    def fake_execute_values(cur, query, rows):
        calls.append((cur.conn, query, rows))

    monkeypatch.setattr(users, "execute_values", fake_execute_values)
    return calls


class TestUser:
    def test_new_assigns_v7_identifier(self):
        user = users.User.new("Jane")

        assert user.id.version == 7
        assert user.first_name == "Jane"

    def test_identifier_cannot_be_reassigned(self):
        user = users.User.new("Jane")

        with pytest.raises(AttributeError):
            user.id = uuid.uuid4()

    def test_created_at_from_identifier(self):
        ident = identifiers.generate(clock=lambda: 1704067200123 * 1_000_000)

        assert users.User(ident, "Bob").created_at == datetime(
            2024, 1, 1, 0, 0, 0, 123000, tzinfo=timezone.utc
        )


class TestInsertUsers:
    def test_single_statement_on_primary(self, router, primary, captured_inserts):
        inserted = users.insert_users(router, ["John", "Jane", "Bob"])

        assert [u.first_name for u in inserted] == ["John", "Jane", "Bob"]
        assert len(captured_inserts) == 1
        conn, query, rows = captured_inserts[0]
        assert conn.dsn == primary.dsn
        assert query == "INSERT INTO tbl_users (id, first_name) VALUES %s"
        assert rows == [(u.id, u.first_name) for u in inserted]
        assert conn.commits == 1

    def test_identifiers_are_unique(self, router, captured_inserts):
        inserted = users.insert_users(router, ["A"] * 20)

        assert len({u.id for u in inserted}) == 20

    def test_empty_batch_touches_nothing(self, router, fake_pools, captured_inserts):
        assert users.insert_users(router, []) == []
        assert fake_pools.instances == []
        assert captured_inserts == []

    def test_generator_failure_writes_nothing(self, router, fake_pools, captured_inserts, monkeypatch):
        def unavailable(*args, **kwargs):
            raise SourceUnavailable("no entropy")

        monkeypatch.setattr(identifiers, "generate", unavailable)

        with pytest.raises(SourceUnavailable):
            users.insert_users(router, ["John"])

        assert fake_pools.instances == []
        assert captured_inserts == []

    def test_driver_error_rolls_back(self, router, fake_pools, monkeypatch):
        def failing(cur, query, rows):
            raise RuntimeError("duplicate key")

        monkeypatch.setattr(users, "execute_values", failing)

        with pytest.raises(RuntimeError):
            users.insert_users(router, ["John"])

        conn = fake_pools.instances[0].conn
        assert conn.rollbacks == 1
        assert conn.commits == 0


class TestReads:
    def test_count_partition_on_replica(self, router, replicas, fake_pools, monkeypatch):
        monkeypatch.setattr(router, "route", lambda op: Read(1))
        with router.connection(Operation.COUNT):
            pass
        fake_pools.instances[0].conn.results = [(3,)]

        assert users.count_partition(router, "tbl_users_p2") == 3

        conn = fake_pools.instances[0].conn
        assert conn.dsn == replicas[1].dsn
        query, params = conn.executed[-1]
        assert isinstance(query, sql.Composed)
        assert sql.Identifier("tbl_users_p2") in query.seq

    def test_fetch_partition(self, router, fake_pools, monkeypatch):
        monkeypatch.setattr(router, "route", lambda op: Read(0))
        with router.connection(Operation.SELECT):
            pass
        first, second = identifiers.generate(), identifiers.generate()
        fake_pools.instances[0].conn.results = [(first, "John"), (second, "Jane")]

        fetched = users.fetch_partition(router, "tbl_users_p0")

        assert fetched == [users.User(first, "John"), users.User(second, "Jane")]

    def test_first_user(self, router, fake_pools, monkeypatch):
        monkeypatch.setattr(router, "route", lambda op: Read(0))
        with router.connection(Operation.SELECT):
            pass
        ident = identifiers.generate()
        conn = fake_pools.instances[0].conn
        conn.results = [(ident, "Alice")]

        assert users.first_user(router) == users.User(ident, "Alice")
        assert conn.executed[-1][0] == "SELECT id, first_name FROM tbl_users ORDER BY id LIMIT 1"

    def test_first_user_empty_table(self, router):
        assert users.first_user(router) is None


class TestTimeouts:
    """A caller's timeout reaches the checked-out connection of every helper."""

    TIMEOUT_SQL = ("SET LOCAL statement_timeout = %s", (2500,))

    def test_insert_users(self, router, fake_pools, captured_inserts):
        users.insert_users(router, ["John"], timeout=2.5)

        assert fake_pools.instances[0].conn.executed[0] == self.TIMEOUT_SQL

    def test_count_partition(self, router, fake_pools, monkeypatch):
        monkeypatch.setattr(router, "route", lambda op: Read(0))
        with router.connection(Operation.COUNT):
            pass
        fake_pools.instances[0].conn.results = [(0,)]

        users.count_partition(router, "tbl_users_p0", timeout=2.5)

        assert fake_pools.instances[0].conn.executed[0] == self.TIMEOUT_SQL

    def test_fetch_partition(self, router, fake_pools):
        users.fetch_partition(router, "tbl_users_p0", timeout=2.5)

        assert fake_pools.instances[0].conn.executed[0] == self.TIMEOUT_SQL

    def test_first_user(self, router, fake_pools):
        users.first_user(router, timeout=2.5)

        assert fake_pools.instances[0].conn.executed[0] == self.TIMEOUT_SQL
