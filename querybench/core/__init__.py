"""
Core query and benchmark engine.
"""

from querybench.core.aggregator import aggregate, format_duration
from querybench.core.benchmark import BenchmarkRunner, print_benchmark_result, run_benchmark
from querybench.core.formatter import ValueKind, format_column, format_value, value_kind
from querybench.core.session import QuerySession
from querybench.core.table_renderer import TableRenderer, print_batches

__all__ = [
    "aggregate",
    "format_duration",
    "BenchmarkRunner",
    "print_benchmark_result",
    "run_benchmark",
    "ValueKind",
    "format_column",
    "format_value",
    "value_kind",
    "QuerySession",
    "TableRenderer",
    "print_batches",
]
