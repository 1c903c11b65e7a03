# ==============================================
# CLI: Command Line Entry Point
# ==============================================
#
# PURPOSE:
#   Provides the command-line interface to run one migration phase.
#
# COMMANDS:
# ---------
# 1. Dump the source table to the flat file:
#    python -m cqlmigrate.cli extract
#
# 2. Load the flat file into the target table:
#    python -m cqlmigrate.cli insert --file data/users.csv
#
# 3. Copy source to target directly (schema-compliance gated):
#    python -m cqlmigrate.cli end-to-end
#
#    With no task argument, MIGRATION_TASK from the environment
#    / .env decides.
#
# IMPLEMENTATION:
# ---------------
# - argparse for parsing
# - configure_logging() installs stream (+ optional file) handlers
# - MigrationRunner runs the phase; exit code 1 unless it succeeded
#
# ==============================================

import argparse
import dataclasses
import logging
import sys
from typing import List, Optional

from cqlmigrate import __version__
from cqlmigrate.config import TaskToPerform, load_config
from cqlmigrate.errors import ConfigError
from cqlmigrate.migration import MigrationRunner

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger once: console always, file when given."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # The driver is chatty at INFO about pool and control connection events
    logging.getLogger("cassandra").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cqlmigrate",
        description="Move the contents of one Cassandra table into another.",
    )
    parser.add_argument(
        "task", nargs="?",
        help="extract | insert | end-to-end (defaults to MIGRATION_TASK)",
    )
    parser.add_argument("--env-file", help="Path to a .env file with the migration settings")
    parser.add_argument("--file", dest="file_path", help="Flat file path (overrides FLAT_FILE_PATH)")
    parser.add_argument("--log-level", help="Logging level (overrides LOG_LEVEL)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.env_file)
        if args.task:
            config = dataclasses.replace(config, task=TaskToPerform.parse(args.task))
    except ConfigError as e:
        configure_logging()
        logger.error(e.message)
        return 2

    if args.file_path:
        config = dataclasses.replace(
            config, flat_file=dataclasses.replace(config.flat_file, path=args.file_path)
        )
    configure_logging(args.log_level or config.log_level, config.log_file)

    result = MigrationRunner(config).run()
    logger.info("Result: %s", result)
    return 0 if result.get("status") == "success" else 1


if __name__ == "__main__":
    sys.exit(main())
