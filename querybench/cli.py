#!/usr/bin/env python3
"""Run queries against Snowflake, or benchmark a client backend."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from querybench import VERSION
from querybench.config import settings
from querybench.connectors import CLIENT_CHOICES, BackendClient, BackendVariant
from querybench.core.benchmark import run_benchmark
from querybench.core.session import QuerySession
from querybench.errors import QueryBenchError, describe_error
from querybench.models import ProfileSet

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.WARNING),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(settings.LOG_FILE)
            if settings.LOG_FILE
            else logging.NullHandler(),
        ],
    )

    # Suppress verbose driver internals (connection handshake, request lines)
    logging.getLogger("snowflake.connector.connection").setLevel(logging.WARNING)
    logging.getLogger("snowflake.connector.network").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1 (got {n})")
    return n


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="querybench",
        description="Run SQL against Snowflake through interchangeable client backends.",
    )
    parser.add_argument("-c", "--config", required=True, help="Path to the YAML profile file.")
    parser.add_argument(
        "-q",
        "--query",
        default=None,
        help="SQL to run once (omit for interactive mode).",
    )
    parser.add_argument(
        "-p",
        "--profile",
        default=None,
        help=f"Profile name (default: {settings.DEFAULT_PROFILE}).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    subparsers = parser.add_subparsers(dest="command")
    bench = subparsers.add_parser("benchmark", help="Time repeated executions of a query.")
    bench.add_argument("-q", "--query", dest="bench_query", required=True, help="SQL to benchmark.")
    bench.add_argument(
        "--client",
        default=settings.DEFAULT_CLIENT,
        choices=CLIENT_CHOICES,
        help=f"Client backend (default: {settings.DEFAULT_CLIENT}).",
    )
    bench.add_argument(
        "-i",
        "--iterations",
        type=_positive_int,
        default=1,
        help="Number of sequential executions (default: 1).",
    )
    bench.add_argument(
        "-p",
        "--profile",
        dest="bench_profile",
        default=None,
        help="Profile name (overrides the top-level --profile).",
    )
    return parser


async def _run(args: argparse.Namespace) -> int:
    profiles = ProfileSet.load(args.config)

    executor = ThreadPoolExecutor(
        max_workers=max(1, int(settings.DRIVER_EXECUTOR_MAX_WORKERS)),
        thread_name_prefix="qb-driver",
    )
    try:
        if args.command == "benchmark":
            profile_name = args.bench_profile or args.profile or settings.DEFAULT_PROFILE
            profile = profiles.get(profile_name)
            variant = BackendVariant.parse(args.client)
            client = BackendClient(variant, profile, executor=executor)
            await run_benchmark(profile, args.bench_query, variant, args.iterations, client=client)
            return 0

        profile = profiles.get(args.profile or settings.DEFAULT_PROFILE)
        client = BackendClient(BackendVariant.ADBC, profile, executor=executor)
        session = QuerySession(client)
        if args.query:
            await session.execute_query(args.query)
        else:
            await session.interactive()
        return 0
    finally:
        executor.shutdown(wait=False)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging()
    try:
        return asyncio.run(_run(args))
    except QueryBenchError as e:
        logger.debug("Command failed", exc_info=True)
        for line in describe_error(e):
            print(line, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("[querybench] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
