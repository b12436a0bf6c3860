"""
config/settings.py
==================
Connection settings for the primary database and its read replicas.

Every value comes from an environment variable with a default suitable for a
local docker-compose setup (primary on 5432, replicas on 5433 and 5434):

  MASTER_DB_NAME / _HOST / _PORT / _USER / _PASSWORD    primary (writes)
  REPLICA_ONE_NAME / _HOST / _PORT / _USER / _PASSWORD  first read replica
  REPLICA_TWO_NAME / _HOST / _PORT / _USER / _PASSWORD  second read replica
  DB_POOL_MIN, DB_POOL_MAX                              connections per endpoint
  DB_CONNECT_TIMEOUT                                    seconds to wait on dial
  LOG_LEVEL                                             root logging level

`Settings.from_env()` is called once at start-up and the resulting frozen
object is passed to whatever needs it. Nothing in this module reads the
environment at import time.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from partition_demo.errors import ConfigurationError

DEFAULT_PASSWORD = "postgres"


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = "localhost"
    port: str = "5432"
    name: str = "postgres"
    user: str = "postgres"
    password: str = DEFAULT_PASSWORD

    def __post_init__(self):
        # libpq key=value pairs are split on whitespace
        for field in ("host", "port", "name", "user", "password"):
            value = getattr(self, field)
            if not value or any(ch.isspace() for ch in value):
                raise ConfigurationError(
                    f"database {field} must be non-empty and contain no whitespace"
                )

    @property
    def dsn(self) -> str:
        return (
            f"host={self.host} "
            f"port={self.port} "
            f"user={self.user} "
            f"password={self.password} "
            f"dbname={self.name} "
            f"sslmode=disable"
        )

    def describe(self) -> str:
        """Password-free label used in log lines and error messages."""
        return f"{self.user}@{self.host}:{self.port}/{self.name}"

    def __repr__(self) -> str:
        return f"DatabaseConfig({self.describe()})"

    @classmethod
    def from_env(
        cls, prefix: str, default_port: str, environ: Mapping[str, str]
    ) -> "DatabaseConfig":
        return cls(
            host=environ.get(f"{prefix}HOST", "localhost"),
            port=environ.get(f"{prefix}PORT", default_port),
            name=environ.get(f"{prefix}NAME", "postgres"),
            user=environ.get(f"{prefix}USER", "postgres"),
            password=environ.get(f"{prefix}PASSWORD", DEFAULT_PASSWORD),
        )


@dataclass(frozen=True)
class EndpointSet:
    """One write endpoint and an ordered, possibly empty, set of read endpoints."""

    write: DatabaseConfig
    reads: tuple[DatabaseConfig, ...] = ()


@dataclass(frozen=True)
class Settings:
    endpoints: EndpointSet
    pool_min: int = 1
    pool_max: int = 10
    connect_timeout: int = 10
    log_level: str = "INFO"

    def __post_init__(self):
        if self.pool_min < 0 or self.pool_max < 1:
            raise ConfigurationError(
                f"pool sizes must be positive (min={self.pool_min}, max={self.pool_max})"
            )
        if self.pool_min > self.pool_max:
            raise ConfigurationError(
                f"DB_POOL_MIN ({self.pool_min}) is larger than DB_POOL_MAX ({self.pool_max})"
            )
        if self.connect_timeout < 0:
            raise ConfigurationError("DB_CONNECT_TIMEOUT must not be negative")
        check_log_level(self.log_level)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        if environ is None:
            environ = os.environ

        endpoints = EndpointSet(
            write=DatabaseConfig.from_env("MASTER_DB_", "5432", environ),
            reads=(
                DatabaseConfig.from_env("REPLICA_ONE_", "5433", environ),
                DatabaseConfig.from_env("REPLICA_TWO_", "5434", environ),
            ),
        )
        return cls(
            endpoints=endpoints,
            pool_min=_int(environ, "DB_POOL_MIN", 1),
            pool_max=_int(environ, "DB_POOL_MAX", 10),
            connect_timeout=_int(environ, "DB_CONNECT_TIMEOUT", 10),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )


def check_log_level(level: str) -> str:
    """Return `level` upper-cased if logging knows it, else raise ConfigurationError."""
    name = level.upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ConfigurationError(f"unknown log level: {level!r}")
    return name


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None
