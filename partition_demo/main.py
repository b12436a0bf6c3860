"""
partition_demo/main.py
======================
Inserts a few users through the primary, then prints how they are spread
over the partitions of `tbl_users` (read from the replicas) and the creation
time decoded from the oldest user's identifier.

USAGE:
  python -m partition_demo.main
  python -m partition_demo.main --names Ann Ben --partitions tbl_users_p0
  python -m partition_demo.main --skip-insert --log-level DEBUG --timeout 2.5

Connection settings come from the environment, see config/settings.py.
Any failure is logged and the process exits with status 1.
"""

import argparse
import logging
import sys

import psycopg2

from config.settings import Settings, check_log_level
from partition_demo.errors import ConfigurationError, PartitionDemoError
from partition_demo.storage.pool import ReplicaRouter
from partition_demo.storage.users import (
    DEFAULT_PARTITIONS,
    count_partition,
    fetch_partition,
    first_user,
    insert_users,
)

logger = logging.getLogger("partition_demo")

DEFAULT_NAMES = ("John", "Jane", "Bob", "Alice", "Charlie")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Partitioned users demo over a primary and read replicas")
    parser.add_argument("--names", nargs="*", default=list(DEFAULT_NAMES), help="First names to insert")
    parser.add_argument("--partitions", nargs="+", default=list(DEFAULT_PARTITIONS), help="Partitions to report on")
    parser.add_argument("--skip-insert", action="store_true", help="Only report, do not insert")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--timeout", type=float, default=None, help="Per-statement timeout in seconds")
    return parser


def show_partitions(router: ReplicaRouter, partitions, timeout=None) -> None:
    print("\n=== Partition Distribution ===")
    for partition in partitions:
        count = count_partition(router, partition, timeout=timeout)
        print(f"Partition {partition}: {count} records")
        for user in fetch_partition(router, partition, timeout=timeout):
            print(f"  - {user.first_name} (ID: {user.id})")


def show_first_user(router: ReplicaRouter, timeout=None) -> bool:
    user = first_user(router, timeout=timeout)
    if user is None:
        logger.error("No users found in tbl_users.")
        return False
    created = user.created_at.strftime("%Y-%m-%d %H:%M:%S")
    print(f"User: {user.first_name} (ID: {user.id}, CreatedDate: {created})")
    return True


def run(settings: Settings, args: argparse.Namespace) -> int:
    with ReplicaRouter(settings) as router:
        if not args.skip_insert:
            insert_users(router, args.names, timeout=args.timeout)
        show_partitions(router, args.partitions, timeout=args.timeout)
        return 0 if show_first_user(router, timeout=args.timeout) else 1


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
        level = check_log_level(args.log_level or settings.log_level)
        if args.timeout is not None and args.timeout <= 0:
            raise ConfigurationError(f"--timeout must be positive, got {args.timeout}")
    except PartitionDemoError as exc:
        logging.basicConfig(level=logging.ERROR, stream=sys.stdout)
        logger.error("Invalid configuration: %s", exc)
        return 1

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stdout,
    )
    logger.info(
        "Primary %s, %d read replica(s).",
        settings.endpoints.write.describe(), len(settings.endpoints.reads),
    )

    try:
        return run(settings, args)
    except (PartitionDemoError, psycopg2.Error) as exc:
        logger.error("Demo failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
