"""
Shared fixtures: in-memory stand-ins for psycopg2 pools, connections and
cursors, so routing and storage code can be exercised without a server.
"""

import random

import psycopg2
import pytest

from config.settings import DatabaseConfig, EndpointSet, Settings
from partition_demo.storage import pool as pool_module


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def execute(self, query, params=None):
        self.conn.executed.append((query, params))
        if self.conn.fail_on_execute is not None:
            raise self.conn.fail_on_execute

    def fetchone(self):
        return self.conn.results.pop(0) if self.conn.results else None

    def fetchall(self):
        rows, self.conn.results = self.conn.results, []
        return rows


class FakeConnection:
    def __init__(self, dsn):
        self.dsn = dsn
        self.closed = 0
        self.executed = []
        self.results = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_on_execute = None

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class FakePool:
    """Records every pool the router creates, keyed by DSN."""

    instances: list["FakePool"] = []
    unreachable: set[str] = set()

    def __init__(self, minconn, maxconn, dsn, **kwargs):
        if dsn in FakePool.unreachable:
            raise psycopg2.OperationalError("connection refused")
        self.minconn = minconn
        self.maxconn = maxconn
        self.dsn = dsn
        self.kwargs = kwargs
        self.conn = FakeConnection(dsn)
        self.checked_out = 0
        self.returned = []
        self.closed_all = False
        self.fail_getconn = None
        FakePool.instances.append(self)

    def getconn(self):
        if self.fail_getconn is not None:
            raise self.fail_getconn
        self.checked_out += 1
        return self.conn

    def putconn(self, conn, close=False):
        self.returned.append((conn, close))

    def closeall(self):
        self.closed_all = True


@pytest.fixture
def fake_pools(monkeypatch):
    FakePool.instances = []
    FakePool.unreachable = set()
    monkeypatch.setattr(pool_module.pool, "ThreadedConnectionPool", FakePool)
    return FakePool


@pytest.fixture
def primary():
    return DatabaseConfig(host="primary", port="5432")


@pytest.fixture
def replicas():
    return (
        DatabaseConfig(host="replica-one", port="5433"),
        DatabaseConfig(host="replica-two", port="5434"),
    )


@pytest.fixture
def settings(primary, replicas):
    return Settings(endpoints=EndpointSet(write=primary, reads=replicas))


@pytest.fixture
def router(settings, fake_pools):
    r = pool_module.ReplicaRouter(settings, rng=random.Random(7))
    yield r
    r.close()
