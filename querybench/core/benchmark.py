"""
Benchmark Runner

Executes one query N times, strictly one after another, through a single
backend and times each execute-and-drain cycle. Iterations are never retried
or skipped: the first failure aborts the run.
"""

from __future__ import annotations

import logging
import sys
import time
from typing import Callable, List, Optional, TextIO

from querybench.connectors import BackendClient, BackendVariant
from querybench.core.aggregator import aggregate, format_duration
from querybench.models import BenchmarkResult, IterationSample, Profile

logger = logging.getLogger(__name__)


class BenchmarkRunner:
    """
    Times sequential executions of one query on one backend.

    The clock starts before the connection is opened and stops once the
    result has been fully drained, so connection setup, execution and result
    transfer are all included; closing the connection is not.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        stream: Optional[TextIO] = None,
        clock: Callable[[], int] = time.perf_counter_ns,
    ):
        self.client = client
        self.stream = stream
        self._clock = clock
        # Samples of the current run; on failure holds the completed iterations.
        self.samples: List[IterationSample] = []

    def _print(self, text: str) -> None:
        print(text, file=self.stream or sys.stdout, flush=True)

    async def run_iteration(self, sql: str, iteration: int) -> IterationSample:
        start = self._clock()
        async with self.client.execute(sql) as outcome:
            rows = await outcome.drain()
            elapsed = self._clock() - start
        return IterationSample(iteration=iteration, duration_ns=elapsed, row_count=rows)

    async def run(self, sql: str, iterations: int) -> BenchmarkResult:
        """
        Run the benchmark.

        Args:
            sql: Query text
            iterations: Number of executions (>= 1)

        Returns:
            Aggregated BenchmarkResult

        Raises:
            ValueError: If iterations < 1
            QueryBenchError: The first iteration failure, unchanged
        """
        if iterations < 1:
            raise ValueError(f"iterations must be >= 1 (got {iterations})")

        self.samples = []
        for i in range(iterations):
            try:
                sample = await self.run_iteration(sql, i + 1)
            except Exception as e:
                logger.error(
                    "Benchmark aborted on iteration %d/%d (%s): %s",
                    i + 1,
                    iterations,
                    self.client.name,
                    e,
                )
                raise
            self.samples.append(sample)

            if i == 0:
                self._print(
                    f"Iteration {i + 1}: {format_duration(sample.duration_ns)} ({sample.row_count})"
                )
            else:
                self._print(f"Iteration {i + 1}: {format_duration(sample.duration_ns)}")
            logger.debug(
                "Iteration %d: %.3f ms, %s rows", i + 1, sample.duration_ms, sample.row_count
            )

        return aggregate(self.client.name, self.samples)


def print_benchmark_result(result: BenchmarkResult, stream: Optional[TextIO] = None) -> None:
    out = stream or sys.stdout
    print(f"\n=== Benchmark Results: {result.client} ===", file=out)
    print(f"Iterations: {result.iterations}", file=out)
    if result.rows is not None:
        print(f"Total rows: {result.rows}", file=out)
    print(f"Total time: {format_duration(result.total_ns)}", file=out)
    print(f"Average time: {format_duration(result.avg_ns)}", file=out)
    print(f"Min time: {format_duration(result.min_ns)}", file=out)
    print(f"Max time: {format_duration(result.max_ns)}", file=out)
    print(file=out, flush=True)


async def run_benchmark(
    profile: Profile,
    sql: str,
    variant: BackendVariant,
    iterations: int,
    *,
    stream: Optional[TextIO] = None,
    client: Optional[BackendClient] = None,
) -> BenchmarkResult:
    """
    Build the backend client, run the benchmark and print the summary.
    """
    out = stream or sys.stdout
    client = client or BackendClient(variant, profile)

    print(f"Running benchmark with client: {client.name}", file=out)
    print(f"Query: {sql}", file=out)
    print(f"Iterations: {iterations}\n", file=out, flush=True)

    runner = BenchmarkRunner(client, stream=out)
    result = await runner.run(sql, iterations)
    print_benchmark_result(result, out)
    return result
