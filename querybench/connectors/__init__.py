"""
Backend connectors.

``BackendClient`` is the entry point; the driver modules behind it are:
- adbc: ADBC Snowflake driver, Arrow record batches
- snowflake_connector: snowflake-connector-python, row counts
- snowflake_api: Snowflake session API over httpx, Arrow or JSON rowsets
"""

from querybench.connectors.client import (
    CLIENT_CHOICES,
    BackendClient,
    BackendVariant,
    QueryOutcome,
    request_timeout_for,
)

__all__ = [
    "CLIENT_CHOICES",
    "BackendClient",
    "BackendVariant",
    "QueryOutcome",
    "request_timeout_for",
]
