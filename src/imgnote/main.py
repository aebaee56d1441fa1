#!/usr/bin/env python
"""Command line entry point for imgnote administration."""
import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from imgnote import __version__
from imgnote.config import config
from imgnote.exceptions import ConfigurationError, ImgnoteError
from imgnote.models.db_models import init_db
from imgnote.models.schema import Actor
from imgnote.observability import configure_logging, metrics
from imgnote.services.note_service import NoteService

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Image note administration")
    parser.add_argument("--version", action="version", version=f"imgnote {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("IMGNOTE_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level.upper()
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files (console only when unset)",
        type=str,
        default=str(config.log_dir) if config.log_dir else None
    )
    parser.add_argument(
        "--metrics",
        help="Print per-operation timings and outcomes as JSON to stderr",
        action="store_true"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create tables and full-text indexes")

    history = commands.add_parser("history", help="Show a note's version history")
    history.add_argument("note_id", type=int)

    undo = commands.add_parser("undo", help="Undo every note change made by a user")
    who = undo.add_mutually_exclusive_group(required=True)
    who.add_argument("--user-id", type=int, help="ID of the user to undo")
    who.add_argument("--user", type=str, help="Name of the user to undo")
    undo.add_argument("--actor-id", type=int, required=True,
                      help="ID of the user performing the undo")
    undo.add_argument("--actor-ip", type=str, default="127.0.0.1")

    return parser.parse_args(argv)


def update_config(args) -> None:
    """Update the global config with command line arguments."""
    try:
        if args.database_path:
            config.database_path = Path(args.database_path)
            config.in_memory_db = False
    except PydanticValidationError as e:
        raise ConfigurationError(str(e), config_key="database_path") from e


def _run_history(service: NoteService, note_id: int) -> int:
    note = service.get_note(note_id)
    if note is None:
        print(f"Note {note_id} not found", file=sys.stderr)
        return 1
    for v in service.get_history(note_id):
        print(
            f"v{v.version}\tid={v.id}\tupdater={v.updater_id}\t"
            f"({v.x},{v.y},{v.width}x{v.height})\tactive={v.is_active}\t{v.body}"
        )
    return 0


def _run_undo(service: NoteService, args) -> int:
    user_id = args.user_id
    if user_id is None:
        user_id = service.users.resolve_id_by_name(args.user)
        if user_id is None:
            print(f"User '{args.user}' not found", file=sys.stderr)
            return 1
    actor = Actor(id=args.actor_id, ip_addr=args.actor_ip)
    result = service.undo_changes_by_user(user_id, actor)
    print(
        f"Deleted {result.versions_deleted} versions, "
        f"reverted {len(result.reverted_note_ids)} notes, "
        f"left {len(result.untouched_note_ids)} unchanged"
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run one administrative command and return the exit code."""
    args = parse_args(argv)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    if args.log_dir:
        try:
            configure_logging(log_dir=args.log_dir, level=log_level, console=True)
        except OSError as e:
            logging.basicConfig(level=log_level)
            logger.warning(f"Failed to configure file logging: {e}")
    else:
        logging.basicConfig(level=log_level)

    try:
        update_config(args)
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except ImgnoteError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        if args.command == "init-db":
            print(f"Initialized {engine.url}")
            return 0
        service = NoteService(engine=engine)
        if args.command == "history":
            return _run_history(service, args.note_id)
        return _run_undo(service, args)
    except ImgnoteError as e:
        logger.error(f"{args.command} failed: {e}")
        print(str(e), file=sys.stderr)
        return 1
    finally:
        engine.dispose()
        if args.metrics:
            print(json.dumps(metrics.get_metrics(), indent=2, sort_keys=True), file=sys.stderr)


if __name__ == "__main__":
    sys.exit(main())
