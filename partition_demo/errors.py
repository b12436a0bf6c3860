"""
partition_demo/errors.py
========================
Exception types raised by the identifier generator, the replica router and
the settings loader. Nothing here retries: every error is handed to the
immediate caller.
"""


class PartitionDemoError(Exception):
    """Base class for all errors raised by this project."""


class ConfigurationError(PartitionDemoError):
    """An environment variable held a value that cannot be used."""


class SourceUnavailable(PartitionDemoError):
    """The clock or the randomness source could not produce an identifier."""


class InvalidFormat(PartitionDemoError, ValueError):
    """A value presented for decoding is not a version 7 identifier."""


class EndpointUnreachable(PartitionDemoError):
    """The endpoint chosen for an operation could not be dialled."""

    def __init__(self, endpoint: str, reason: object) -> None:
        super().__init__(f"cannot connect to {endpoint}: {reason}")
        self.endpoint = endpoint
        self.reason = reason
