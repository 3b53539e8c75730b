"""Weekly Arena CLI entry point."""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from weekly_arena import __version__
from weekly_arena.analytics.ranking import LeaderboardMode
from weekly_arena.config import Settings, get_settings
from weekly_arena.services.leaderboard import LeaderboardService
from weekly_arena.storage.firestore import FirestoreClient
from weekly_arena.storage.memory import InMemoryStore
from weekly_arena.storage.query import DocumentStore

# Logs go to stderr; stdout carries the JSON payload only
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def _init_logfire(settings: Settings) -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from weekly_arena.observability import initialize_logfire

        initialize_logfire(settings)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


@asynccontextmanager
async def open_store(settings: Settings) -> AsyncIterator[DocumentStore]:
    """Build the configured store; the caller owns it for one command."""
    if settings.store.backend == "firestore":
        client = FirestoreClient(
            settings.store,
            access_token=settings.firestore_access_token or None,
            api_key=settings.firestore_api_key or None,
        )
        async with client:
            yield client
        return

    fixture = settings.store.fixture_path
    if fixture is None:
        raise ValueError("store.fixture_path is required for the memory backend")
    if not fixture.is_absolute():
        fixture = settings.data_dir / fixture
    if not fixture.exists():
        raise ValueError(f"Fixture file not found: {fixture}")
    yield InMemoryStore.from_file(fixture)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _load_settings(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    level = logging.DEBUG if getattr(args, "debug", False) else settings.log_level.upper()
    logging.getLogger().setLevel(level)
    return settings


def _run(args: argparse.Namespace, command) -> int:
    """Run an async command with the configured store; 1 on configuration errors."""
    try:
        settings = _load_settings(args)
        _init_logfire(settings)

        async def run() -> Any:
            async with open_store(settings) as store:
                service = LeaderboardService(store, settings.ranking, settings.risk)
                return await command(service)

        _print_json(asyncio.run(run()))
        return 0

    except ValidationError as e:
        print("\nConfiguration Error:\n", file=sys.stderr)
        for error in e.errors():
            print(f"  - {'.'.join(str(x) for x in error['loc'])}: {error['msg']}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse configuration: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        return 1


def cmd_leaderboard(args: argparse.Namespace) -> int:
    """Print one leaderboard mode."""
    mode = LeaderboardMode(args.mode)
    if mode == LeaderboardMode.BY_WEEK and not args.week_id:
        print("--week-id is required for --mode by-week", file=sys.stderr)
        return 1

    async def command(service: LeaderboardService) -> Any:
        board = await service.leaderboard(
            mode,
            k=args.weeks,
            week_id=args.week_id,
            limit=args.limit,
            min_weeks=args.min_weeks,
        )
        return board.model_dump(mode="json")

    return _run(args, command)


def cmd_analytics(args: argparse.Namespace) -> int:
    """Print the full analytics report built from one snapshot."""

    async def command(service: LeaderboardService) -> Any:
        report = await service.analytics_report(uid=args.uid)
        return report.model_dump(mode="json")

    return _run(args, command)


def cmd_history(args: argparse.Namespace) -> int:
    """Print a user's weekly balance history, oldest week first."""

    async def command(service: LeaderboardService) -> Any:
        history = await service.user_history(args.uid, limit=args.limit)
        return [wb.model_dump(mode="json", by_alias=True) for wb in history]

    return _run(args, command)


def cmd_config(args: argparse.Namespace) -> int:
    """Print merged configuration with secrets masked."""
    try:
        settings = get_settings()
    except ValidationError as e:
        print("\nConfiguration Error:\n", file=sys.stderr)
        for error in e.errors():
            print(f"  - {'.'.join(str(x) for x in error['loc'])}: {error['msg']}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse configuration: {e}")
        return 1

    payload = settings.model_dump(
        mode="json",
        exclude={"firestore_access_token", "firestore_api_key", "logfire_token"},
    )
    payload["secrets"] = {
        "firestore_access_token": bool(settings.firestore_access_token),
        "firestore_api_key": bool(settings.firestore_api_key),
        "logfire_token": bool(settings.logfire_token),
    }
    _print_json(payload)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Weekly Arena: leaderboards and portfolio analytics for the weekly allocation contest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Weekly Arena {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_leaderboard = subparsers.add_parser(
        "leaderboard",
        help="Print a leaderboard",
    )
    parser_leaderboard.add_argument(
        "--mode",
        choices=[m.value for m in LeaderboardMode],
        default=LeaderboardMode.LATEST_WEEK.value,
        help="Ranking mode (default: latest-week)",
    )
    parser_leaderboard.add_argument(
        "--weeks",
        type=int,
        help="Window size in settled weeks for recent-weeks, win-rate and annualized",
    )
    parser_leaderboard.add_argument(
        "--week-id",
        help="Week id for --mode by-week",
    )
    parser_leaderboard.add_argument(
        "--limit",
        type=int,
        help="Maximum number of rows",
    )
    parser_leaderboard.add_argument(
        "--min-weeks",
        type=int,
        help="Drop users with fewer defined weeks in the window (window modes only)",
    )
    parser_leaderboard.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser_leaderboard.set_defaults(func=cmd_leaderboard)

    parser_analytics = subparsers.add_parser(
        "analytics",
        help="Print the full analytics report",
    )
    parser_analytics.add_argument(
        "--uid",
        help="Add a per-user section for this uid",
    )
    parser_analytics.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser_analytics.set_defaults(func=cmd_analytics)

    parser_history = subparsers.add_parser(
        "history",
        help="Print a user's weekly balance history",
    )
    parser_history.add_argument(
        "--uid",
        required=True,
        help="User id",
    )
    parser_history.add_argument(
        "--limit",
        type=int,
        help="Maximum number of weeks (default: ranking.history_limit)",
    )
    parser_history.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser_history.set_defaults(func=cmd_history)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
