#!/usr/bin/env python3
"""Time whole querybench processes with hyperfine, one client at a time.

Each hyperfine run starts a fresh ``querybench benchmark --iterations 1``
process, so interpreter start-up and driver loading are part of the timing.
"""

from __future__ import annotations

import argparse
import shlex
import shutil
import subprocess
import sys

DEFAULT_QUERY = "SELECT 1 as test"
DEFAULT_JSON_QUERY = "SHOW TABLES"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Benchmark querybench clients end to end with hyperfine."
    )
    parser.add_argument("--config", default="config.example.yaml", help="Profile file.")
    parser.add_argument("--query", default=DEFAULT_QUERY, help="Query for the Arrow clients.")
    parser.add_argument(
        "--json-query",
        default=DEFAULT_JSON_QUERY,
        help="Query for the snowflake-api-json client.",
    )
    parser.add_argument("--runs", type=int, default=10, help="Minimum hyperfine runs per client.")
    parser.add_argument("--warmup", type=int, default=1, help="Warm-up runs per client.")
    parser.add_argument("--profile", default="prod", help="Profile name.")
    parser.add_argument(
        "--querybench-bin",
        default="querybench",
        help="querybench executable to time.",
    )
    parser.add_argument(
        "--hyperfine-bin",
        default="hyperfine",
        help="Path to hyperfine executable.",
    )
    return parser


def _hyperfine_available(hyperfine_bin: str) -> bool:
    return shutil.which(hyperfine_bin) is not None


def _build_hyperfine_cmd(
    *,
    hyperfine_bin: str,
    querybench_bin: str,
    config: str,
    profile: str,
    client: str,
    query: str,
    runs: int,
    warmup: int,
) -> list[str]:
    # hyperfine takes the timed command as one shell string.
    timed = shlex.join(
        [
            querybench_bin,
            "--config",
            config,
            "benchmark",
            "--query",
            query,
            "--client",
            client,
            "--iterations",
            "1",
            "--profile",
            profile,
        ]
    )
    return [
        hyperfine_bin,
        "--warmup",
        str(warmup),
        "--min-runs",
        str(runs),
        timed,
    ]


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    if not _hyperfine_available(args.hyperfine_bin):
        print("hyperfine not found. Install it with: cargo install hyperfine", file=sys.stderr)
        return 1
    if args.runs < 1 or args.warmup < 0:
        print("--runs must be >= 1 and --warmup >= 0", file=sys.stderr)
        return 1

    plan = [
        ("adbc", args.query),
        ("snowflake-api-arrow", args.query),
        ("snowflake-api-json", args.json_query),
    ]

    print("=" * 42)
    print("Benchmarking with hyperfine")
    print(f"Query: {args.query}")
    print(f"Profile: {args.profile}")
    print("=" * 42)

    exit_code = 0
    for n, (client, query) in enumerate(plan, start=1):
        print(f"\n{n}. Benchmarking {client}...")
        cmd = _build_hyperfine_cmd(
            hyperfine_bin=args.hyperfine_bin,
            querybench_bin=args.querybench_bin,
            config=args.config,
            profile=args.profile,
            client=client,
            query=query,
            runs=args.runs,
            warmup=args.warmup,
        )
        rc = subprocess.run(cmd).returncode
        if rc != 0:
            print(f"[hyperfine] {client} exited with {rc}", file=sys.stderr)
            exit_code = 1

    print()
    print("=" * 42)
    print("All benchmarks completed!" if exit_code == 0 else "Some benchmarks failed")
    print("=" * 42)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
