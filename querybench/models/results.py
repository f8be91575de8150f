"""
Benchmark Result Models

Per-iteration samples are plain dataclasses (ephemeral, consumed by the
aggregator); the aggregated result is an immutable Pydantic model.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

NANOS_PER_MS = 1_000_000


@dataclass(frozen=True)
class IterationSample:
    """One measured execute-and-drain cycle."""

    iteration: int
    duration_ns: int
    row_count: Optional[int] = None

    @property
    def duration_ms(self) -> float:
        return self.duration_ns / NANOS_PER_MS


class BenchmarkResult(BaseModel):
    """
    Aggregated timings for one benchmark run.

    Durations are integer nanoseconds except the average, which is the exact
    quotient of total and iteration count.
    """

    model_config = ConfigDict(frozen=True)

    client: str = Field(..., description="Backend name")
    iterations: int = Field(..., ge=1, description="Completed iterations")
    total_ns: int = Field(..., description="Sum of iteration durations (ns)")
    avg_ns: float = Field(..., description="Average iteration duration (ns)")
    min_ns: int = Field(..., description="Fastest iteration (ns)")
    max_ns: int = Field(..., description="Slowest iteration (ns)")
    rows: Optional[int] = Field(
        None, description="Rows returned by one representative iteration"
    )

    @property
    def total_ms(self) -> float:
        return self.total_ns / NANOS_PER_MS

    @property
    def avg_ms(self) -> float:
        return self.avg_ns / NANOS_PER_MS

    @property
    def min_ms(self) -> float:
        return self.min_ns / NANOS_PER_MS

    @property
    def max_ms(self) -> float:
        return self.max_ns / NANOS_PER_MS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (milliseconds)."""
        return {
            "client": self.client,
            "iterations": self.iterations,
            "rows": self.rows,
            "total_ms": self.total_ms,
            "avg_ms": self.avg_ms,
            "min_ms": self.min_ms,
            "max_ms": self.max_ms,
        }
