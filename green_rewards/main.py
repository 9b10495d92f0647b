"""Command line entry point for the green rewards engine."""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from green_rewards.config.settings import get_config
from green_rewards.db.database import Database
from green_rewards.errors import EngineError
from green_rewards.orchestration.runner import build_engine
from green_rewards.types import DistributionStatus
from green_rewards.utils.file_operations import (
    distribution_to_dataframe,
    leaderboard_to_dataframe,
    save_dataframe_to_csv,
)
from green_rewards.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    BRIGHT_WHITE = '\033[97m'
    BOLD = '\033[1m'
    DIM = '\033[2m'


# Disable colors when output is not a terminal
if not (hasattr(sys.stdout, 'isatty') and sys.stdout.isatty()):
    for attr in dir(Colors):
        if not attr.startswith('_'):
            setattr(Colors, attr, '')


def print_header(text: str, char: str = "=", color: str = Colors.CYAN):
    """Print a formatted header."""
    width = 70
    print()
    print(color + Colors.BOLD + char * width + Colors.RESET)
    print(color + Colors.BOLD + text.center(width) + Colors.RESET)
    print(color + Colors.BOLD + char * width + Colors.RESET)
    print()


def print_success(text: str):
    print(Colors.GREEN + Colors.BOLD + "✓ " + Colors.RESET + Colors.GREEN + text + Colors.RESET)


def print_error(text: str):
    print(Colors.RED + Colors.BOLD + "✗ " + Colors.RESET + Colors.RED + text + Colors.RESET)


def print_warning(text: str):
    print(Colors.YELLOW + Colors.BOLD + "⚠ " + Colors.RESET + Colors.YELLOW + text + Colors.RESET)


def cmd_init_db(args) -> int:
    config = get_config()
    database = Database(config.database_url)
    database.init()
    database.dispose()
    print_success(f"Database ready: {config.database_url}")
    return 0


def cmd_distribute(args) -> int:
    engine = build_engine(get_config())
    try:
        outcome = engine.distribution.distribute(args.period)
        engine.distribution.wait_for_notifications()
    finally:
        engine.close()

    if outcome.status == DistributionStatus.FAILED:
        print_error(outcome.message)
        return 1
    if outcome.status == DistributionStatus.SKIPPED:
        print_warning(f"{outcome.period_key}: {outcome.message}")
        return 0

    print_header(f"Leaderboard rewards {outcome.period_key}")
    if outcome.status == DistributionStatus.ALREADY_DISTRIBUTED:
        print_warning(outcome.message)
    if outcome.record:
        for winner in outcome.record.winners:
            print(
                Colors.BRIGHT_WHITE + f"  #{winner.rank} " + Colors.RESET +
                f"{winner.name or winner.user_id}: +{winner.bonus_points} "
                f"({winner.previous_total} -> {winner.new_total})"
            )
        print()
        if args.output_csv:
            path = save_dataframe_to_csv(
                distribution_to_dataframe(outcome.record),
                Path(args.output_csv).parent,
                Path(args.output_csv).name,
            )
            print_success(f"Winners saved to {path}")
    print_success(outcome.message)
    return 0


def cmd_leaderboard(args) -> int:
    engine = build_engine(get_config())
    try:
        entries = engine.ranking.top(args.top)
    finally:
        engine.close()

    print_header(f"Top {args.top}")
    if not entries:
        print_warning("No ranked users yet")
    for entry in entries:
        print(
            Colors.BRIGHT_WHITE + f"  #{entry.rank:<4}" + Colors.RESET +
            f"{(entry.name or entry.user_id):<30} {entry.total_points:>8} pts  {entry.total_actions:>5} actions"
        )

    if args.output_csv:
        output = Path(args.output_csv)
        path = save_dataframe_to_csv(leaderboard_to_dataframe(entries), output.parent, output.name)
        print_success(f"Leaderboard saved to {path}")
    return 0


def cmd_rank(args) -> int:
    engine = build_engine(get_config())
    try:
        rank = engine.ranking.user_rank(args.user_id)
    finally:
        engine.close()

    if rank.rank == 0:
        print_warning(f"User {args.user_id} is not ranked")
        return 0
    print_success(
        f"User {args.user_id}: rank #{rank.rank}, {rank.total_points} points, "
        f"{rank.total_actions} actions, top {100 - rank.percentile}%"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Green Rewards - verification and leaderboard rewards engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m green_rewards.main init-db
  python -m green_rewards.main distribute --period 2025-01-22
  python -m green_rewards.main leaderboard --top 10 --output-csv outputs/top10.csv
  python -m green_rewards.main rank <user-id>
        """
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: LOG_LEVEL env or INFO)'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Optional log file path'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    init_db = subparsers.add_parser('init-db', help='Create database tables')
    init_db.set_defaults(func=cmd_init_db)

    distribute = subparsers.add_parser('distribute', help='Pay the leaderboard bonus for a period')
    distribute.add_argument('--period', type=str, default=None, help='Period key YYYY-MM-DD (default: today)')
    distribute.add_argument('--output-csv', type=str, default=None, help='Write winners to this CSV file')
    distribute.set_defaults(func=cmd_distribute)

    leaderboard = subparsers.add_parser('leaderboard', help='Show the all-time leaderboard')
    leaderboard.add_argument('--top', type=int, default=10, help='Number of users to show (default: 10)')
    leaderboard.add_argument('--output-csv', type=str, default=None, help='Write the leaderboard to this CSV file')
    leaderboard.set_defaults(func=cmd_leaderboard)

    rank = subparsers.add_parser('rank', help="Show one user's rank")
    rank.add_argument('user_id', type=str)
    rank.set_defaults(func=cmd_rank)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_file = Path(args.log_file) if args.log_file else None
    setup_logging(log_level=args.log_level or get_config().log_level, log_file=log_file)

    try:
        return args.func(args)
    except EngineError as e:
        print_error(str(e))
        logger.error(f"Command {args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
