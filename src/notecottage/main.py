#!/usr/bin/env python
"""Operator command line for a NoteCottage store."""
import argparse
import json
import logging
import os
import sys
from pathlib import Path

from notecottage import __version__
from notecottage.config import config
from notecottage.exceptions import NoteCottageError
from notecottage.observability import configure_logging, metrics
from notecottage.services.user_service import UserService
from notecottage.storage.database import Database
from notecottage.storage.fts_index import FtsIndex
from notecottage.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="notecottage", description="NoteCottage store maintenance"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTECOTTAGE_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTECOTTAGE_LOG_LEVEL", "INFO")
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=os.environ.get("NOTECOTTAGE_LOG_DIR")
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create the schema, search index and default rows")
    sub.add_parser("check-index", help="Compare the search index with the notes table")
    sub.add_parser("rebuild-index", help="Drop and repopulate the search index")
    sub.add_parser("empty-trash", help="Permanently delete every trashed note")
    sub.add_parser("stats", help="Print instance statistics as JSON")
    return parser.parse_args(argv)


def update_config(args) -> None:
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
        config.database_url = None
    if args.log_dir:
        config.log_dir = Path(args.log_dir)
    config.log_level = args.log_level


def run_command(command: str, db: Database) -> int:
    """Execute one subcommand against an initialized database.

    Returns:
        Process exit code.
    """
    if command == "init":
        print(f"Database ready: {db.engine.url}")
        return 0

    fts = FtsIndex(db)
    if command == "check-index":
        health = fts.check_integrity()
        print(
            f"notes={health.note_count} indexed={health.index_count} "
            f"probe={'ok' if health.probe_ok else 'failed'}"
        )
        for issue in health.issues:
            print(f"  - {issue}")
        if not health.healthy:
            print("Search index is unhealthy; run 'notecottage rebuild-index'")
            return 1
        print("Search index is healthy")
        return 0

    if command == "rebuild-index":
        count = fts.rebuild()
        print(f"Rebuilt search index with {count} notes")
        return 0

    if command == "empty-trash":
        removed = NoteRepository(db, fts=fts).empty_trash()
        print(f"Removed {removed} notes from trash")
        return 0

    if command == "stats":
        stats = UserService(db).system_stats()
        print(json.dumps(stats.model_dump(), indent=2))
        return 0

    raise ValueError(f"Unknown command: {command}")


def main(argv=None) -> int:
    """Run the NoteCottage operator CLI."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
        logger.debug(f"Persistent logging enabled: {log_dir}")
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    db = Database()
    try:
        db = Database(config.get_db_url())
        db.init()
        return run_command(args.command, db)
    except NoteCottageError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()
        logger.debug(f"Operation metrics: {metrics.get_metrics()}")


if __name__ == "__main__":
    sys.exit(main())
