"""Storefront database management CLI.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys

from storefront.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _initialized_domain():
    from storefront.domain import storefront

    storefront.init()
    return storefront


def setup_databases() -> None:
    from storefront.utils.db import setup_db

    domain = _initialized_domain()
    logger.info("creating_schema", domain=domain.name)
    setup_db(domain)
    logger.info("schema_ready", domain=domain.name)


def drop_databases() -> None:
    from storefront.utils.db import drop_db

    domain = _initialized_domain()
    logger.info("dropping_schema", domain=domain.name)
    drop_db(domain)
    logger.info("schema_dropped", domain=domain.name)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Storefront database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args(argv)
    configure_logging()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
