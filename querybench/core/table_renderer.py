"""
Table Renderer

Prints query results as an aligned text table::

    ID         | NAME
    -----------+-----------
    1          | alpha
    2          | NULL

Column widths are computed over every batch before anything is printed, so
the renderer keeps the formatted text of the displayed rows (at most
``max_rows`` per batch) in memory. Rows past the cap are counted but never
formatted or kept.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Iterable, List, Optional, TextIO

import pyarrow as pa

from querybench.core.formatter import format_column

MAX_DISPLAY_ROWS = 1000
MIN_COLUMN_WIDTH = 10
COLUMN_SEPARATOR = " | "
HEADER_SEPARATOR = "-+-"
NO_ROWS_MESSAGE = "Query returned no rows."


def truncation_notice(shown: int, total: int) -> str:
    return f"... (showing first {shown} of {total} rows)"


@dataclass
class _Segment:
    """Displayed rows of one batch."""

    rows: List[List[str]]
    total_rows: int


class TableRenderer:
    """
    Accumulates batches sharing one schema, then renders them as one table.

    Usage:
        renderer = TableRenderer()
        for batch in batches:
            renderer.add_batch(batch)
        renderer.write(sys.stdout)
    """

    def __init__(self, max_rows: int = MAX_DISPLAY_ROWS):
        self.max_rows = max_rows
        self.column_names: Optional[List[str]] = None
        self.widths: List[int] = []
        self._segments: List[_Segment] = []

    def add_batch(self, batch: pa.RecordBatch) -> None:
        """Format the displayed rows of ``batch`` and widen columns to fit."""
        if batch.num_rows == 0:
            return

        if self.column_names is None:
            self.column_names = list(batch.schema.names)
            self.widths = [max(len(name), MIN_COLUMN_WIDTH) for name in self.column_names]

        # The display cap applies to each batch independently.
        shown = min(batch.num_rows, self.max_rows)
        columns = [format_column(batch.column(i), shown) for i in range(batch.num_columns)]
        for idx, cells in enumerate(columns):
            if cells:
                self.widths[idx] = max(self.widths[idx], max(len(c) for c in cells))

        rows = [list(row) for row in zip(*columns)]
        self._segments.append(_Segment(rows=rows, total_rows=batch.num_rows))

    def _format_row(self, cells: List[str]) -> str:
        return COLUMN_SEPARATOR.join(
            cell.ljust(width) for cell, width in zip(cells, self.widths)
        )

    def lines(self) -> List[str]:
        """Rendered output, one entry per printed line."""
        if not self._segments or self.column_names is None:
            return [NO_ROWS_MESSAGE]

        out = [
            self._format_row(self.column_names),
            HEADER_SEPARATOR.join("-" * width for width in self.widths),
        ]
        for segment in self._segments:
            out.extend(self._format_row(row) for row in segment.rows)
            if segment.total_rows > self.max_rows:
                out.append("")
                out.append(truncation_notice(self.max_rows, segment.total_rows))
        return out

    def write(self, stream: Optional[TextIO] = None) -> None:
        stream = stream or sys.stdout
        for line in self.lines():
            stream.write(line + "\n")
        stream.flush()


def print_batches(
    batches: Iterable[pa.RecordBatch],
    stream: Optional[TextIO] = None,
    *,
    max_rows: int = MAX_DISPLAY_ROWS,
) -> TableRenderer:
    """Render a finite sequence of batches to ``stream`` (stdout by default)."""
    renderer = TableRenderer(max_rows=max_rows)
    for batch in batches:
        renderer.add_batch(batch)
    renderer.write(stream)
    return renderer
