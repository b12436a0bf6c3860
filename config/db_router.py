"""
config/db_router.py
===================
Routes write operations (INSERT / UPDATE / DELETE / DDL) to the primary and
read operations (SELECT / COUNT) to one of the read replicas.

How it works:
  - `route()` is called once per logical operation.
  - Writes always get `Write()`.
  - Reads get `Read(i)` with `i` drawn uniformly at random from the
    configured replicas, independently on every call. There is no session
    stickiness and no health-aware weighting.
  - With no replicas configured, reads fall back to `Write()`.

The policy is pure: it looks only at the operation, the immutable endpoint
set and the random source it is given. Dialling, pooling and error reporting
live in partition_demo/storage/pool.py.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Union

from config.settings import DatabaseConfig, EndpointSet


class Operation(Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    DDL = "ddl"
    SELECT = "select"
    COUNT = "count"

    @property
    def is_write(self) -> bool:
        return self not in (Operation.SELECT, Operation.COUNT)


@dataclass(frozen=True)
class Write:
    """The single writable endpoint."""

    def __str__(self) -> str:
        return "write"


@dataclass(frozen=True)
class Read:
    """The read endpoint at position `index` in EndpointSet.reads."""

    index: int

    def __str__(self) -> str:
        return f"read[{self.index}]"


Endpoint = Union[Write, Read]


def route(
    op: Operation,
    endpoints: EndpointSet,
    rng: random.Random | None = None,
) -> Endpoint:
    if op.is_write or not endpoints.reads:
        return Write()
    chooser = rng if rng is not None else random
    return Read(chooser.randrange(len(endpoints.reads)))


def resolve(target: Endpoint, endpoints: EndpointSet) -> DatabaseConfig:
    if isinstance(target, Read):
        return endpoints.reads[target.index]
    return endpoints.write
