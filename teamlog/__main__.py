#!/usr/bin/env python3
"""
Team Message Log: Command-Line Entry Point

Usage:
    python -m teamlog compact [--keep-live N] [--max-per-run N]
    python -m teamlog archive-page N [--limit N]
    python -m teamlog recent [--limit N]
    python -m teamlog serve-scheduler

    # Against Redis
    TEAMLOG_STORE_BACKEND=redis TEAMLOG_REDIS_URL=redis://localhost:6379/0 python -m teamlog compact

Results are printed as JSON on stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Optional, Sequence

from teamlog.api.app import TeamLogServices
from teamlog.core.config import TeamLogConfig
from teamlog.core.errors import TeamLogError
from teamlog.core.types import Result
from teamlog.observability.logging import LogLevel, StructuredLogger, setup_logging

logger = StructuredLogger("teamlog.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="teamlog", description="Team message log maintenance")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compact = subparsers.add_parser("compact", help="Run one compaction")
    compact.add_argument("--keep-live", type=int, default=None)
    compact.add_argument("--max-per-run", type=int, default=None)

    archive = subparsers.add_parser("archive-page", help="Print one archive page")
    archive.add_argument("page", type=int)
    archive.add_argument("--limit", type=int, default=None)

    recent = subparsers.add_parser("recent", help="Print recent coalesced messages")
    recent.add_argument("--limit", type=int, default=None)

    subparsers.add_parser("serve-scheduler", help="Run periodic compaction until interrupted")
    return parser


def _emit(result: Result[Any, TeamLogError], render: Any) -> int:
    if result.is_err():
        print(json.dumps({"error": result.error.to_dict()}, default=str), file=sys.stderr)
        return 1
    print(json.dumps(render(result.value), indent=2, default=str))
    return 0


async def _serve_scheduler(services: TeamLogServices) -> int:
    """Block until cancelled while scheduled compaction runs; 2 if it is disabled."""
    if not services.scheduler.is_running and not services.start_background():
        print("Scheduled compaction is disabled (set TEAMLOG_COMPACTION_ENABLED=true)", file=sys.stderr)
        return 2
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        pass
    finally:
        await services.scheduler.stop()
    return 0


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config_result = TeamLogConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}", file=sys.stderr)
        return 2
    config = config_result.unwrap()

    setup_logging(
        LogLevel.parse(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    services_result = await TeamLogServices.create(
        config, start_background=args.command == "serve-scheduler",
    )
    if services_result.is_err():
        print(f"Startup error: {services_result.error}", file=sys.stderr)
        return 2
    services = services_result.unwrap()

    try:
        if args.command == "compact":
            result = await services.compactor.compact(args.keep_live, args.max_per_run)
            return _emit(result, lambda report: report.to_dict())
        if args.command == "archive-page":
            result = await services.paginator.page(args.page, args.limit)
            return _emit(result, lambda page: page.to_dict())
        if args.command == "recent":
            result = await services.live.fetch_recent(limit=args.limit)
            return _emit(result, lambda messages: [m.to_dict() for m in messages])
        return await _serve_scheduler(services)
    finally:
        await services.close()


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    run()
