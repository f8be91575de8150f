"""
Benchmark aggregation.

Pure reduction of per-iteration samples into a ``BenchmarkResult``.
"""

from __future__ import annotations

from typing import Sequence

from querybench.errors import AggregationError
from querybench.models import BenchmarkResult, IterationSample


def aggregate(client: str, samples: Sequence[IterationSample]) -> BenchmarkResult:
    """
    Reduce iteration samples to total/average/min/max.

    The reported row count is the one observed on the last iteration (one
    representative run), not a sum across iterations.

    Args:
        client: Backend name
        samples: Samples in iteration order

    Returns:
        BenchmarkResult

    Raises:
        AggregationError: If there are no samples to average
    """
    if not samples:
        raise AggregationError(f"Cannot aggregate benchmark for {client}: no iterations completed")

    durations = [int(s.duration_ns) for s in samples]
    iterations = len(durations)
    total_ns = sum(durations)

    return BenchmarkResult(
        client=client,
        iterations=iterations,
        total_ns=total_ns,
        # int / int is correctly rounded, so min <= avg <= max holds exactly.
        avg_ns=total_ns / iterations,
        min_ns=min(durations),
        max_ns=max(durations),
        rows=samples[-1].row_count,
    )


def format_duration(nanos: float) -> str:
    """
    Human-readable duration with two decimals in the largest fitting unit.

    Example:
        >>> format_duration(123_450_000)
        '123.45ms'
        >>> format_duration(1_500_000_000)
        '1.50s'
    """
    nanos = max(0.0, float(nanos))
    if nanos >= 1_000_000_000:
        return f"{nanos / 1_000_000_000:.2f}s"
    if nanos >= 1_000_000:
        return f"{nanos / 1_000_000:.2f}ms"
    if nanos >= 1_000:
        return f"{nanos / 1_000:.2f}µs"
    return f"{nanos:.2f}ns"
