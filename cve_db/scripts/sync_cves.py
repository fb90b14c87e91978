"""
CVE sync command line

USAGE EXAMPLES:
cve-sync recent            # CVEs published in the last 30 days
cve-sync full              # historical walk from the current year down
cve-sync continue          # resume the historical walk
cve-sync cisa              # merge the CISA KEV catalog
cve-sync status            # database stats and stream progress as JSON
cve-sync reset full        # forget a stream's progress (operator action)
"""

import argparse
import json
import logging
import sys
from typing import Optional

from pydantic import ValidationError

from cve_db.config.settings import Settings, get_settings
from cve_db.logging_config import setup_logging
from cve_db.models import SyncRunResult
from cve_db.orchestration.sync_orchestrator import STREAMS, SyncOrchestrator, SyncType

logger = logging.getLogger(__name__)


def print_summary(result: SyncRunResult):
    print("\n" + "=" * 60)
    print(f"CVE SYNC SUMMARY: {result.stream}")
    print("=" * 60)
    print(f"Success:          {'yes' if result.success else 'no'}")
    print(f"Status:           {result.status.value}")
    print(f"Cursor:           {result.cursor or '-'}")
    print(f"Processed:        {result.records_processed}")
    print(f"Added:            {result.records_added}")
    print(f"Updated:          {result.records_updated}")
    print(f"Skipped:          {result.records_skipped}")
    print(f"Failed:           {result.records_failed}")
    print(f"Requests:         {result.requests_made}")
    if result.end_time:
        print(f"Duration:         {(result.end_time - result.start_time).total_seconds():.1f}s")
    for error in result.errors:
        print(f"Error:            {error}")
    print("=" * 60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Sync CVE data from NVD and the CISA KEV catalog')
    parser.add_argument('--log-level', default=None, help='Logging level (default: LOG_LEVEL setting)')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    for sync_type in SyncType:
        subparsers.add_parser(sync_type.value, help=f'Run a {sync_type.value} sync')
    subparsers.add_parser('status', help='Show database stats and sync progress')
    reset_parser = subparsers.add_parser('reset', help='Clear the stored progress of a stream')
    reset_parser.add_argument('stream', choices=STREAMS, help='Stream to reset')
    return parser


def load_settings(log_level: Optional[str] = None) -> Optional[Settings]:
    """Settings for an entry point, or None (logged) when the environment is invalid"""
    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging(log_level or "INFO")
        logger.error(f"❌ Invalid configuration: {e}")
        return None

    setup_logging(log_level or settings.LOG_LEVEL, settings.LOG_FILE)
    return settings


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = load_settings(args.log_level)
    if settings is None:
        return 1

    try:
        orchestrator = SyncOrchestrator.from_settings(settings, show_progress=True)
    except Exception as e:
        logger.error(f"❌ Unable to start: {e}")
        return 1

    try:
        if args.command == 'status':
            print(json.dumps(orchestrator.get_status(), indent=2))
            return 0

        if args.command == 'reset':
            cleared = orchestrator.tracker.reset(args.stream)
            print(f"Progress for '{args.stream}' {'cleared' if cleared else 'was already empty'}")
            return 0

        result = orchestrator.sync(args.command)
        print_summary(result)
        return 0 if result.success else 1

    except Exception as e:
        logger.error(f"❌ {args.command} failed: {e}", exc_info=True)
        return 1
    finally:
        orchestrator.close()


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
