"""
Query Session

Single-shot (non-benchmark) path: run a query on a fresh connection and print
the result table, either once or in an interactive read-eval-print loop.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO

from querybench.connectors import BackendClient
from querybench.core.table_renderer import MAX_DISPLAY_ROWS, TableRenderer
from querybench.errors import QueryBenchError, describe_error

logger = logging.getLogger(__name__)

PROMPT = "querybench> "
EXIT_COMMANDS = {"exit", "quit"}


class QuerySession:
    """Runs queries through one backend client and prints their results."""

    def __init__(
        self,
        client: BackendClient,
        *,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        max_rows: int = MAX_DISPLAY_ROWS,
    ):
        self.client = client
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.max_rows = max_rows

    async def execute_query(self, sql: str) -> None:
        """Execute ``sql`` and print its result."""
        async with self.client.execute(sql) as outcome:
            if outcome.batches is None:
                self.stdout.write(f"Query returned {outcome.row_count or 0} rows.\n")
                self.stdout.flush()
                return

            renderer = TableRenderer(max_rows=self.max_rows)
            async for batch in outcome.batches:
                renderer.add_batch(batch)

        renderer.write(self.stdout)

    async def interactive(self, stdin: Optional[TextIO] = None) -> None:
        """
        Read queries line by line until ``exit``, ``quit`` or end of input.

        A failing query prints its error to stderr; the loop keeps going.
        """
        stdin = stdin or sys.stdin
        self.stdout.write("querybench - Interactive Mode\n")
        self.stdout.write("Enter SQL queries (or 'exit' to quit):\n\n")

        while True:
            self.stdout.write(PROMPT)
            self.stdout.flush()

            line = stdin.readline()
            if not line:
                self.stdout.write("\n")
                break

            query = line.strip()
            if not query:
                continue
            if query in EXIT_COMMANDS:
                break

            try:
                await self.execute_query(query)
            except QueryBenchError as e:
                logger.debug("Query failed: %s", e)
                for text in describe_error(e):
                    self.stderr.write(text + "\n")
                self.stderr.flush()
