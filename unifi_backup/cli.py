"""
Command line entry point for unifi-backup.

Usage:
    unifi-backup [--config PATH] [--once]
    unifi-backup --version
    unifi-backup version
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__, configure_logging
from .cancellation import CancellationToken
from .config import load_config
from .exceptions import ConfigError
from .backup.executor import execute_backup
from .scheduler import run_scheduled


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='unifi-backup',
        description='Back up a UniFi Network controller to local disk, S3, GCS or SMB.'
    )
    parser.add_argument('command', nargs='?', choices=['version'], help='print the version and exit')
    parser.add_argument('--config', '-c', metavar='PATH', help='path to a YAML or JSON config file')
    parser.add_argument('--version', action='store_true', dest='show_version', help='print the version and exit')
    parser.add_argument('--once', action='store_true', help='run a single backup even if a schedule is configured')
    return parser


def install_signal_handlers(cancellation: CancellationToken):
    """Cancel the root token on SIGINT or SIGTERM."""
    def _handler(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        cancellation.cancel()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the CLI.

    Returns:
        Process exit code: 0 on success, 1 on any failure
    """
    args = build_parser().parse_args(argv)

    if args.show_version or args.command == 'version':
        print(f"unifi-backup {__version__}")
        return 0

    load_dotenv()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(config.logging.level, config.logging.format, config.logging.file or None)
    logger.info(f"Starting unifi-backup {__version__}")

    cancellation = CancellationToken()
    install_signal_handlers(cancellation)

    if config.schedule.cron and not args.once:
        try:
            run_scheduled(config, cancellation)
        except ValueError as e:
            logger.error(f"Invalid schedule {config.schedule.cron!r}: {e}")
            return 1
        return 0

    result = execute_backup(config, cancellation=cancellation)

    if not result.succeeded:
        logger.error(f"Backup {result.status}: {result.error_message}")
        return 1

    logger.info("Backup completed successfully")
    return 0


if __name__ == '__main__':
    sys.exit(main())
