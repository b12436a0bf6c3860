"""
storage/users.py
================
Reads and writes for the partitioned `tbl_users` table.

    tbl_users (
        id         uuid          PRIMARY KEY,   -- version 7, see identifiers.py
        first_name varchar(255)  NOT NULL
    ) PARTITION BY ...  -- tbl_users_p0 .. tbl_users_p3, created out-of-band

Writes go through the primary, reads through whichever replica the router
picks. The table and its partitions must already exist; nothing here issues
DDL.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from psycopg2 import sql
from psycopg2.extras import execute_values

from config.db_router import Operation
from partition_demo import identifiers
from partition_demo.storage.pool import ReplicaRouter

logger = logging.getLogger(__name__)

TABLE = "tbl_users"
DEFAULT_PARTITIONS = ("tbl_users_p0", "tbl_users_p1", "tbl_users_p2", "tbl_users_p3")


@dataclass(frozen=True)
class User:
    id: uuid.UUID
    first_name: str

    @classmethod
    def new(cls, first_name: str) -> "User":
        """Assign the identifier once, at creation; it never changes afterwards."""
        return cls(id=identifiers.generate(), first_name=first_name)

    @property
    def created_at(self) -> datetime:
        return identifiers.extract_timestamp(self.id)


def insert_users(
    router: ReplicaRouter, names: Iterable[str], timeout: float | None = None
) -> list[User]:
    """
    Insert one row per name in a single multi-row INSERT on the primary.

    All identifiers are generated before the connection is checked out, so a
    SourceUnavailable from the generator aborts the batch with nothing written.
    """
    users = [User.new(name) for name in names]
    if not users:
        return users

    with router.connection(Operation.INSERT, timeout=timeout) as (target, conn):
        try:
            with conn.cursor() as cur:
                execute_values(
                    cur,
                    f"INSERT INTO {TABLE} (id, first_name) VALUES %s",
                    [(user.id, user.first_name) for user in users],
                )
        except Exception:
            logger.exception("insert_users failed on %s, batch rolled back.", target)
            raise

    logger.info("Inserted %d users into %s.", len(users), TABLE)
    return users


def count_partition(router: ReplicaRouter, partition: str, timeout: float | None = None) -> int:
    with router.connection(Operation.COUNT, timeout=timeout) as (target, conn):
        with conn.cursor() as cur:
            cur.execute(
                sql.SQL("SELECT count(*) FROM {}").format(sql.Identifier(partition))
            )
            count = cur.fetchone()[0]
    logger.debug("count(%s) = %d via %s.", partition, count, target)
    return count


def fetch_partition(
    router: ReplicaRouter, partition: str, timeout: float | None = None
) -> list[User]:
    with router.connection(Operation.SELECT, timeout=timeout) as (target, conn):
        with conn.cursor() as cur:
            cur.execute(
                sql.SQL("SELECT id, first_name FROM {} ORDER BY id").format(
                    sql.Identifier(partition)
                )
            )
            rows = cur.fetchall()
    logger.debug("Fetched %d rows from %s via %s.", len(rows), partition, target)
    return [User(id=row[0], first_name=row[1]) for row in rows]


def first_user(router: ReplicaRouter, timeout: float | None = None) -> User | None:
    """Return the user with the lowest identifier, i.e. the oldest one."""
    with router.connection(Operation.SELECT, timeout=timeout) as (_, conn):
        with conn.cursor() as cur:
            cur.execute(f"SELECT id, first_name FROM {TABLE} ORDER BY id LIMIT 1")
            row = cur.fetchone()
    if row is None:
        return None
    return User(id=row[0], first_name=row[1])
