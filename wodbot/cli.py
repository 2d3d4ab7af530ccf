"""Command line entrypoints.

Examples::

    python -m wodbot book tuesday            # first configured user
    python -m wodbot book tuesday,friday -d  # dry run
    python -m wodbot book --multi-users      # every user, every configured day
    python -m wodbot serve                   # timer-driven loop with waiting lists
    python -m wodbot discover                # show application id and categories
    python -m wodbot status                  # print the last status snapshot
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import List, Optional, Sequence

from automation.platform.client import SessionClient
from automation.platform.errors import PlatformError
from automation.shared.booking_contracts import BookingOutcome
from infrastructure.logging_config import setup_logging
from infrastructure.settings import AppSettings, load_settings
from reservations.orchestrator import BookingOrchestrator
from users.profiles import ConfigError, GymConfig, UserProfile, build_user, load_gym_config

logger = logging.getLogger('wodbot')

FAILED_OUTCOMES = (BookingOutcome.AUTH_FAILED, BookingOutcome.TRANSIENT_ERROR)


def _split_days(values: Optional[Sequence[str]]) -> List[str]:
    days: List[str] = []
    for value in values or ():
        days.extend(part.strip().lower() for part in value.split(',') if part.strip())
    return days


def _resolve_credentials(args: argparse.Namespace, config: GymConfig) -> tuple:
    first = config.users[0] if config.users else None
    login = args.user or (first.login if first else None)
    password = args.password or (first.password if first else None)
    if not login or not password:
        raise ConfigError("No credentials: pass --user/--password or add a user to the config")
    name = first.name if first is not None and not args.user else login
    return name, login, password


def _book_config(args: argparse.Namespace, config: GymConfig) -> GymConfig:
    """Narrow the configuration down to what the ``book`` flags ask for."""

    config = config.with_overrides(
        application_id=args.application_id,
        category_activity_id=args.category_activity_id,
    )
    if args.multi_users:
        return config

    days = _split_days(args.days) or _split_days([args.slots] if args.slots else None)
    if not days:
        raise ConfigError(
            "Specify days to book (e.g. `book tuesday`), --multi-users for all users "
            "from the config, or --slots with --user/--password"
        )
    name, login, password = _resolve_credentials(args, config)
    user = build_user(name, login, password, days, config.slots, logger=logger)
    return config.with_overrides(users=[user])


async def _run_book(args: argparse.Namespace, settings: AppSettings) -> int:
    config = _book_config(args, load_gym_config(args.config))
    orchestrator = BookingOrchestrator(config, settings, dry_run=args.dry_run)
    try:
        report = await orchestrator.run_once(ignore_window=args.force)
    finally:
        await orchestrator.shutdown()

    if args.dry_run:
        print("[DRY RUN] No booking request was sent")
    for line in report.format_lines():
        print(line)
    failed = [attempt for attempt in report.attempts if attempt.outcome in FAILED_OUTCOMES]
    return 1 if failed else 0


async def _run_serve(args: argparse.Namespace, settings: AppSettings) -> int:
    config_path = args.config
    config = load_gym_config(config_path)
    orchestrator = BookingOrchestrator(
        config,
        settings,
        dry_run=args.dry_run,
        status_path=settings.status_file,
    )

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, orchestrator.request_stop)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            signal.signal(signum, lambda *_: orchestrator.request_stop())

    await orchestrator.serve(config_provider=lambda: load_gym_config(config_path))
    return 0


async def _run_discover(args: argparse.Namespace, settings: AppSettings) -> int:
    config = load_gym_config(args.config)
    application_id = args.application_id or config.application_id
    name, login, password = _resolve_credentials(args, config)

    client = SessionClient(
        application_id,
        base_url=settings.base_url,
        timezone=config.timezone or settings.timezone,
        timeout_seconds=settings.http_timeout_seconds,
    )
    print(f"Logging in as {login}...")
    session = await client.open(UserProfile(name=name, login=login, password=password))
    try:
        categories = await client.list_categories(session)
    finally:
        await session.close()

    print("\n=== Account Information ===")
    print(f"  application_id: {session.application_id}")
    print("\n=== Activity Categories ===")
    if not categories:
        print("  (none returned)")
    for category_id, category_name in categories:
        print(f"  {category_id}: {category_name}")
    return 0


def _run_status(settings: AppSettings) -> int:
    path = Path(settings.status_file)
    if not path.exists():
        print(f"No status file at {path}; is `serve` running?")
        return 1
    with path.open('r', encoding='utf-8') as handle:
        payload = json.load(handle)

    print(f"Status v{payload.get('version')} generated at {payload.get('generated_at')}")
    for session in payload.get('sessions', []):
        state = 'ok' if session.get('authenticated') else 'logged out'
        print(f"  session {session.get('user')}: {state}")
    for day in payload.get('days', []):
        line = f"  {day.get('user')} {day.get('day')} {day.get('target_date')}: {day.get('outcome')}"
        if day.get('reason'):
            line += f" ({day['reason']})"
        print(line)
    for entry in payload.get('waiting_list', []):
        print(
            f"  waiting: {entry.get('user')} {entry.get('target_date')} "
            f"{entry.get('slot_time')} polls={entry.get('polls')}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='wodbot',
        description="Automatically book recurring gym training slots",
    )
    parser.add_argument('-v', '--verbose', action='store_true', help="Debug output on the console")
    subparsers = parser.add_subparsers(dest='command', required=True)

    def add_config(sub: argparse.ArgumentParser) -> None:
        sub.add_argument('-c', '--config', default=None, help="Path to the TOML config file")

    book = subparsers.add_parser(
        'book',
        help="Book training slots for one or more users",
        description=(
            "Book the next occurrence of each day. Today counts while its slot is "
            "still ahead; once it has started the following week is booked."
        ),
    )
    book.add_argument('days', nargs='*', metavar='DAYS', help="Days to book, e.g. tuesday,friday")
    book.add_argument('-m', '--multi-users', action='store_true', help="Book for every configured user")
    book.add_argument('-u', '--user', help="Login to use instead of the first configured user")
    book.add_argument('-p', '--password', help="Password for --user")
    book.add_argument('-s', '--slots', help="Comma-separated days when no DAYS are given")
    book.add_argument('--application-id', help="Override the configured application id")
    book.add_argument('--category-activity-id', help="Override the configured category id")
    book.add_argument('-d', '--dry-run', action='store_true', help="Find slots but do not book")
    book.add_argument('-f', '--force', action='store_true', help="Ignore the booking window")
    add_config(book)

    serve = subparsers.add_parser('serve', help="Run booking cycles and waiting lists continuously")
    serve.add_argument('-d', '--dry-run', action='store_true', help="Find slots but do not book")
    add_config(serve)

    discover = subparsers.add_parser('discover', help="Show the application id and activity categories")
    discover.add_argument('--application-id', help="Override the configured application id")
    discover.add_argument('-u', '--user', help="Login to use instead of the first configured user")
    discover.add_argument('-p', '--password', help="Password for --user")
    add_config(discover)

    subparsers.add_parser('status', help="Print the status file written by `serve`")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings()
    setup_logging(settings.log_directory, production_mode=settings.production_mode, verbose=args.verbose)

    if args.command == 'status':
        return _run_status(settings)

    args.config = args.config or settings.config_file
    runners = {
        'book': _run_book,
        'serve': _run_serve,
        'discover': _run_discover,
    }
    try:
        return asyncio.run(runners[args.command](args, settings))
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}")
        return 2
    except PlatformError as exc:
        logger.error("Platform error: %s", exc)
        print(f"Platform error: {exc}")
        return 1
