"""Command-line entry point for leadsync."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from pathlib import Path

from leadsync.core import (
    AppSettings,
    ServiceContainer,
    SessionIdentity,
    configure_logging,
    load_app_settings,
)
from leadsync.core.datetime_utils import display_datetime
from leadsync.core.models import (
    AppError,
    Conversation,
    ErrorKind,
    Filters,
    LeadStatus,
    SortDirection,
    SortField,
)
from leadsync.errors import get_error_pipeline
from leadsync.ingestion import ThreadSync, VisibilitySignal
from leadsync.storage import BoundedCache
from leadsync.transport import ApiClient
from leadsync.views import ViewEngine, classify_status


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Conversation thread sync client")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "threads", "watch"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "--user-id",
        dest="user_id",
        default=None,
        help="User whose threads are loaded (overrides LEADSYNC_SYNC__USER_ID).",
    )
    parser.add_argument(
        "--search", default="", help="Case-insensitive text filter for threads."
    )
    parser.add_argument(
        "--status",
        action="append",
        choices=[status.value for status in LeadStatus],
        default=None,
        help="Status to include; repeat for several (default: all).",
    )
    parser.add_argument(
        "--min-score", dest="min_score", type=float, default=0, help="Lowest AI score."
    )
    parser.add_argument(
        "--max-score",
        dest="max_score",
        type=float,
        default=100,
        help="Highest AI score.",
    )
    parser.add_argument(
        "--sort",
        choices=[field.value for field in SortField],
        default=SortField.DATE.value,
        help="Sort field (default: date).",
    )
    parser.add_argument(
        "--direction",
        choices=[direction.value for direction in SortDirection],
        default=SortDirection.DESC.value,
        help="Sort direction (default: desc).",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=60.0,
        help="Seconds the watch command keeps running (default: 60).",
    )
    return parser


def build_container(settings: AppSettings, *, user_id: str | None = None) -> ServiceContainer:
    """Wire the client core for ``settings``."""
    container = ServiceContainer()
    container.register_instance("settings", settings)
    container.register_instance(
        "identity", SessionIdentity(user_id or settings.sync.user_id)
    )
    container.register_instance("error_pipeline", get_error_pipeline())
    container.register_instance("visibility", VisibilitySignal())
    container.register(
        "cache",
        lambda c: BoundedCache(
            max_size=settings.cache.max_size,
            default_ttl_seconds=settings.cache.default_ttl_seconds,
        ),
    )
    container.register(
        "api_client",
        lambda c: ApiClient(
            settings.api,
            cache=c.resolve("cache"),
            error_pipeline=c.resolve("error_pipeline"),
            identity=c.resolve("identity"),
        ),
    )
    container.register(
        "thread_sync",
        lambda c: ThreadSync(
            c.resolve("api_client"),
            c.resolve("identity"),
            c.resolve("visibility"),
            polling=settings.sync.polling,
            refetch_interval=settings.sync.refetch_interval_seconds,
            check_interval=settings.sync.check_interval_seconds,
            retries=settings.sync.fetch_retries,
            retry_delay=settings.sync.retry_delay_seconds,
        ),
    )
    return container


def build_view_engine(args: argparse.Namespace) -> ViewEngine:
    """Create a view engine from the filter and sort arguments."""
    statuses = args.status or [status.value for status in LeadStatus]
    filters = Filters(
        status=frozenset(LeadStatus(value) for value in statuses),
        ai_score_range=(args.min_score, args.max_score),
        search_query=args.search,
    )
    return ViewEngine(
        filters=filters,
        sort_field=SortField(args.sort),
        sort_direction=SortDirection(args.direction),
    )


def execute(args: argparse.Namespace, settings: AppSettings) -> None:
    """Execute the requested CLI command."""
    command = args.command
    if command == "info":
        print("leadsync is ready. Configure the gateway URL and user id to sync.")
        print(f"Gateway: {settings.api.base_url}")
        print(f"User id: {args.user_id or settings.sync.user_id or '(not set)'}")
        print(f"New-item check interval: {settings.sync.check_interval_seconds}s")
    elif command == "threads":
        asyncio.run(_run_threads(args, settings))
    elif command == "watch":
        asyncio.run(_run_watch(args, settings))


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    execute(args, settings)


def _report_auth_error(error: AppError) -> None:
    print(f"Authentication problem: {error.message}")


async def _run_threads(args: argparse.Namespace, settings: AppSettings) -> None:
    """Load the threads once and print the projection."""
    container = build_container(settings, user_id=args.user_id)
    pipeline = container.resolve("error_pipeline")
    pipeline.register_handler(ErrorKind.AUTH, _report_auth_error)
    try:
        sync: ThreadSync = container.resolve("thread_sync")
        if sync.user_id is None:
            print("No user id configured; pass --user-id or set LEADSYNC_SYNC__USER_ID.")
            return
        await sync.start()
        await pipeline.join()
        if sync.error:
            print(f"Fetch failed: {sync.error}")
            return
        engine = build_view_engine(args)
        engine.set_conversations(sync.data)
        _print_projection(engine)
    finally:
        await container.aclose()


async def _run_watch(args: argparse.Namespace, settings: AppSettings) -> None:
    """Keep the threads in sync and reprint whenever they change."""
    container = build_container(settings, user_id=args.user_id)
    pipeline = container.resolve("error_pipeline")
    pipeline.register_handler(ErrorKind.AUTH, _report_auth_error)
    try:
        sync: ThreadSync = container.resolve("thread_sync")
        if sync.user_id is None:
            print("No user id configured; pass --user-id or set LEADSYNC_SYNC__USER_ID.")
            return
        engine = build_view_engine(args)
        changed = asyncio.Event()
        sync.subscribe(lambda state: changed.set())
        await sync.start()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + args.duration
        last_printed = None
        while True:
            if not sync.loading and sync.data is not last_printed:
                if sync.error:
                    print(f"Refresh failed: {sync.error} (showing last loaded threads)")
                engine.set_conversations(sync.data)
                _print_projection(engine)
                last_printed = sync.data
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            changed.clear()
            try:
                await asyncio.wait_for(changed.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                break
    finally:
        await container.aclose()


def _print_projection(engine: ViewEngine) -> None:
    rows: Sequence[Conversation] = engine.projection
    counts = engine.status_counts()
    print(
        f"Showing {len(rows)} of {counts['total']} thread(s) "
        f"(hot={counts['hot']}, warm={counts['warm']}, cold={counts['cold']}):"
    )
    if not rows:
        return
    header = f"{'Status':<6}  {'Score':>5}  {'Last message':<20}  {'Lead':<24}  Email"
    print(header)
    print("-" * len(header))
    for conversation in rows:
        thread = conversation.thread
        score = "-" if thread.ai_score is None else f"{thread.ai_score:.0f}"
        print(
            f"{classify_status(thread.ai_score).value:<6}  {score:>5}  "
            f"{display_datetime(thread.last_message_at):<20}  "
            f"{thread.lead_name[:24]:<24}  {thread.client_email}"
        )


if __name__ == "__main__":
    main()
