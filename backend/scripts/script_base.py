#!/usr/bin/env python3
"""
Script Base - Common infrastructure for CLI scripts

Provides a base class that handles:
- Path setup for imports from the backend directory
- Logging configuration (stdout + file)
- Argument parsing with common options
- Opening the event store from DATABASE_URL
- Header/summary printing and exit codes

Usage:
    from script_base import ScriptBase, run_script

    def main():
        script = ScriptBase(
            name="my_script",
            description="Does something useful",
        )
        script.add_dry_run_arg()
        args = script.parse_args()

        script.print_header({"DRY RUN": args.dry_run})
        with script.open_store() as store:
            ...
        script.print_summary({'events_created': 1})
        return True

    if __name__ == "__main__":
        run_script(main)
"""

import sys
import argparse
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional

# Add parent directory to path for imports (do this immediately)
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from config import LOG_FORMAT, load_settings
from db_utils import Database
from event_store import EventStore


class ScriptBase:
    """Base class providing common CLI script infrastructure."""

    def __init__(
        self,
        name: str,
        description: str,
        epilog: str = "",
        log_dir: Optional[Path] = None
    ):
        """
        Initialize the script base.

        Args:
            name: Script name (used for log file naming)
            description: Script description for --help
            epilog: Additional help text (examples, etc.)
            log_dir: Directory for log files (default: scripts/log/)
        """
        load_dotenv()
        self.name = name
        self.log_dir = log_dir or Path(__file__).parent / 'log'
        self.logger = self._setup_logging()
        self.parser = self._create_parser(description, epilog)

    def _setup_logging(self) -> logging.Logger:
        """Configure logging with stdout and file handlers."""
        self.log_dir.mkdir(exist_ok=True)

        logging.basicConfig(
            level=logging.INFO,
            format=LOG_FORMAT,
            handlers=[
                logging.StreamHandler(sys.stdout),
                logging.FileHandler(self.log_dir / f'{self.name}.log')
            ]
        )
        return logging.getLogger(self.name)

    def _create_parser(self, description: str, epilog: str) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            description=description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=epilog
        )
        parser.add_argument(
            '--database-url',
            default=os.environ.get('DATABASE_URL'),
            help='PostgreSQL connection string (default: $DATABASE_URL)'
        )
        return parser

    # =========================================================================
    # Common Arguments
    # =========================================================================

    def add_dry_run_arg(self):
        """Add --dry-run argument."""
        self.parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would happen without making changes'
        )

    def add_debug_arg(self):
        """Add --debug argument."""
        self.parser.add_argument(
            '--debug',
            action='store_true',
            help='Enable debug logging'
        )

    def parse_args(self, args=None) -> argparse.Namespace:
        """
        Parse command line arguments and apply common settings.

        Args:
            args: Arguments to parse (default: sys.argv)

        Returns:
            Parsed arguments namespace
        """
        parsed = self.parser.parse_args(args)

        if getattr(parsed, 'debug', False):
            logging.getLogger().setLevel(logging.DEBUG)
            self.logger.debug("Debug logging enabled")

        self.database_url = parsed.database_url or load_settings()['DATABASE_URL']
        return parsed

    # =========================================================================
    # Storage
    # =========================================================================

    @contextmanager
    def open_store(self):
        """Open a small connection pool for the duration of the block."""
        database = Database(self.database_url, min_size=1, max_size=2)
        database.open()
        try:
            yield EventStore(database)
        finally:
            database.close()

    # =========================================================================
    # Output Formatting
    # =========================================================================

    def print_header(self, modes: dict = None, title: str = None):
        """
        Print a formatted header with optional mode indicators.

        Args:
            modes: Dict of mode_name -> is_active (e.g., {"DRY RUN": True})
            title: Custom title (default: script name formatted)
        """
        title = title or self.name.replace('_', ' ').title()

        self.logger.info("=" * 80)
        self.logger.info(title)
        self.logger.info("=" * 80)

        for mode_name, is_active in (modes or {}).items():
            if is_active:
                self.logger.info(f"*** {mode_name} MODE ***")

        self.logger.info("")

    def print_summary(self, stats: dict, title: str = "SUMMARY"):
        """
        Print a formatted summary of operation statistics.

        Args:
            stats: Dict of stat_name -> value
            title: Summary section title
        """
        self.logger.info("")
        self.logger.info("=" * 80)
        self.logger.info(title)
        self.logger.info("=" * 80)

        if stats:
            max_key_len = max(len(str(k)) for k in stats.keys())
            for key, value in stats.items():
                display_key = key.replace('_', ' ').title()
                self.logger.info(f"{display_key:<{max_key_len + 5}} {value}")

        self.logger.info("=" * 80)


def run_script(main_func: Callable[[], bool]):
    """
    Run a script's main function with standard exception handling.

    Args:
        main_func: Function that returns True on success, False on failure
    """
    try:
        success = main_func()
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\nCancelled by user")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)
