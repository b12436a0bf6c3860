"""
storage/pool.py
===============
One logical database handle backed by the primary and its read replicas.

  - `ReplicaRouter.route(op)` applies the policy in config/db_router.py:
    writes go to the primary, reads to a replica picked at random.
  - `ReplicaRouter.connection(op)` checks a connection out of the chosen
    endpoint's pool for exactly one logical operation, then commits (or
    rolls back on error) and hands it back to the pool.
  - Each endpoint gets its own `ThreadedConnectionPool`, created lazily the
    first time the endpoint is chosen. Pools are safe for concurrent
    checkout/release; the router itself holds no per-call state.

If the chosen endpoint cannot be dialled, EndpointUnreachable is raised. The
router never retries and never fails over to another endpoint.
"""

import logging
import math
import random
import threading
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2 import pool
from psycopg2.extras import register_uuid

from config.db_router import Endpoint, Operation, resolve, route
from config.settings import Settings
from partition_demo.errors import EndpointUnreachable

logger = logging.getLogger(__name__)

# uuid.UUID <-> Postgres uuid, process-wide
register_uuid()


class ReplicaRouter:
    def __init__(self, settings: Settings, rng: random.Random | None = None) -> None:
        self.settings = settings
        self.endpoints = settings.endpoints
        self._rng = rng if rng is not None else random.Random()
        self._pools: dict[Endpoint, pool.ThreadedConnectionPool] = {}
        self._lock = threading.Lock()
        self._dial_locks: dict[Endpoint, threading.Lock] = {}
        self._closed = False

    def __enter__(self) -> "ReplicaRouter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Routing ───────────────────────────────────────────────────────────────

    def route(self, op: Operation) -> Endpoint:
        return route(op, self.endpoints, self._rng)

    # ── Pools ─────────────────────────────────────────────────────────────────

    def _get_pool(self, target: Endpoint) -> pool.ThreadedConnectionPool:
        existing = self._pools.get(target)
        if existing is not None:
            return existing

        # The router-wide lock only guards the dicts; dialling happens under
        # the endpoint's own lock so a slow endpoint never stalls the others.
        with self._lock:
            if self._closed:
                raise RuntimeError("ReplicaRouter is closed")
            endpoint_lock = self._dial_locks.setdefault(target, threading.Lock())

        with endpoint_lock:
            existing = self._pools.get(target)
            if existing is not None:
                return existing

            config = resolve(target, self.endpoints)
            try:
                created = pool.ThreadedConnectionPool(
                    minconn=self.settings.pool_min,
                    maxconn=self.settings.pool_max,
                    dsn=config.dsn,
                    connect_timeout=self.settings.connect_timeout,
                )
            except psycopg2.OperationalError as exc:
                logger.error("Cannot connect to %s endpoint %s: %s", target, config.describe(), exc)
                raise EndpointUnreachable(config.describe(), exc) from exc

            with self._lock:
                closed = self._closed
                if not closed:
                    self._pools[target] = created
            if closed:
                created.closeall()
                raise RuntimeError("ReplicaRouter is closed")

            logger.info(
                "Connection pool for %s endpoint %s created (min=%d, max=%d).",
                target, config.describe(), self.settings.pool_min, self.settings.pool_max,
            )
            return created

    @contextmanager
    def connection(
        self, op: Operation, timeout: float | None = None
    ) -> Iterator[tuple[Endpoint, "psycopg2.extensions.connection"]]:
        """
        Yield `(target, conn)` for one logical operation.

        `timeout` (seconds, > 0) is applied to the operation's transaction as
        `statement_timeout`, rounded up to whole milliseconds; the server
        cancels any statement that runs longer and the resulting error
        propagates unchanged.

        The dial itself is bounded by DB_CONNECT_TIMEOUT, not by `timeout`:
        a pool fixes its connect arguments when it is created and hands out
        connections to every later caller, and libpq's connect_timeout only
        has whole-second resolution.
        """
        statement_timeout_ms = _statement_timeout_ms(timeout)
        target = self.route(op)
        p = self._get_pool(target)
        try:
            conn = p.getconn()
        except psycopg2.OperationalError as exc:
            config = resolve(target, self.endpoints)
            logger.error("Cannot connect to %s endpoint %s: %s", target, config.describe(), exc)
            raise EndpointUnreachable(config.describe(), exc) from exc

        logger.debug("%s routed to %s.", op.name, target)
        try:
            if statement_timeout_ms is not None:
                with conn.cursor() as cur:
                    cur.execute("SET LOCAL statement_timeout = %s", (statement_timeout_ms,))
            yield target, conn
            conn.commit()
        except Exception:
            if not conn.closed:
                conn.rollback()
            raise
        finally:
            p.putconn(conn, close=bool(conn.closed))

    def close(self) -> None:
        with self._lock:
            self._closed = True
            pools, self._pools = self._pools, {}
        for target, p in pools.items():
            p.closeall()
            logger.debug("Connection pool for %s endpoint closed.", target)


def _statement_timeout_ms(timeout: float | None) -> int | None:
    # statement_timeout = 0 means "no limit", so never round down to it
    if timeout is None:
        return None
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout!r}")
    return max(1, math.ceil(timeout * 1000))
