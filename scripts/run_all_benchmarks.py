#!/usr/bin/env python3
"""Benchmark every client backend against one profile, one after another."""

from __future__ import annotations

import argparse
import asyncio
import sys

from querybench.cli import configure_logging
from querybench.connectors import BackendVariant
from querybench.core.benchmark import run_benchmark
from querybench.errors import QueryBenchError, describe_error
from querybench.models import BenchmarkResult, ProfileSet

# SHOW statements come back as JSON rowsets; SELECTs as Arrow.
DEFAULT_QUERY = "SELECT 1 as test"
DEFAULT_JSON_QUERY = "SHOW TABLES"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run the benchmark for the adbc, snowflake-api-arrow and snowflake-api-json clients."
    )
    parser.add_argument("--config", default="config.example.yaml", help="Profile file.")
    parser.add_argument("--query", default=DEFAULT_QUERY, help="Query for the Arrow clients.")
    parser.add_argument(
        "--json-query",
        default=DEFAULT_JSON_QUERY,
        help="Query for the snowflake-api-json client.",
    )
    parser.add_argument("--iterations", type=int, default=5, help="Iterations per client.")
    parser.add_argument("--profile", default="prod", help="Profile name.")
    parser.add_argument(
        "--include-connector",
        action="store_true",
        help="Also benchmark the snowflake-connector client (needs an encrypted key or password).",
    )
    return parser


async def _run_all(args: argparse.Namespace) -> int:
    profile = ProfileSet.load(args.config).get(args.profile)

    plan = [(BackendVariant.ADBC, args.query)]
    if args.include_connector:
        plan.append((BackendVariant.SNOWFLAKE_CONNECTOR, args.query))
    plan.append((BackendVariant.SNOWFLAKE_API_ARROW, args.query))
    plan.append((BackendVariant.SNOWFLAKE_API_JSON, args.json_query))

    print("=" * 42)
    print("Running benchmarks for all Snowflake clients")
    print(f"Query: {args.query}")
    print(f"Iterations: {args.iterations}")
    print(f"Profile: {args.profile}")
    print("=" * 42)
    print()

    results: list[BenchmarkResult] = []
    failures = 0
    for n, (variant, sql) in enumerate(plan, start=1):
        print(f"{n}. Benchmarking {variant.value}...")
        try:
            results.append(await run_benchmark(profile, sql, variant, args.iterations))
        except QueryBenchError as e:
            failures += 1
            for line in describe_error(e):
                print(line, file=sys.stderr)
        print()

    print("=" * 42)
    for result in results:
        print(f"{result.client:<24} avg {result.avg_ms:10.2f} ms")
    print("All benchmarks completed!" if not failures else f"{failures} benchmark(s) failed")
    print("=" * 42)
    return 0 if not failures else 1


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    if args.iterations < 1:
        parser.error(f"--iterations must be >= 1 (got {args.iterations})")
    configure_logging()
    try:
        return asyncio.run(_run_all(args))
    except QueryBenchError as e:
        for line in describe_error(e):
            print(line, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("[bench] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
