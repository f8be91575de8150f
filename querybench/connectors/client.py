"""
Backend Client

One capability interface (authenticate, execute) over the four client
backends. Each backend's credential rules and result-shape quirks are
branches on ``BackendVariant`` here; the driver work lives in the
per-driver modules.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

import httpx
import pyarrow as pa

from querybench.config import settings
from querybench.connectors.adbc import AdbcConnector
from querybench.connectors.keys import (
    AuthMethod,
    Credentials,
    KeyFormat,
    classify_private_key,
)
from querybench.connectors.snowflake_api import ResultFormat, SnowflakeApiConnector
from querybench.connectors.snowflake_connector import SnowflakeConnectorClient
from querybench.errors import MissingCredential, ResultShapeMismatch, UnsupportedKeyFormat
from querybench.models import Profile

logger = logging.getLogger(__name__)


class BackendVariant(str, Enum):
    """Client backends selectable with ``--client``."""

    ADBC = "adbc"
    SNOWFLAKE_CONNECTOR = "snowflake-connector"
    SNOWFLAKE_API_ARROW = "snowflake-api-arrow"
    SNOWFLAKE_API_JSON = "snowflake-api-json"

    @classmethod
    def parse(cls, name: str) -> "BackendVariant":
        key = str(name or "").strip().lower()
        key = VARIANT_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            supported = ", ".join(v.value for v in cls)
            raise ValueError(f"Unknown client: {name}. Supported clients: {supported}") from None

    @property
    def produces_batches(self) -> bool:
        return self in (BackendVariant.ADBC, BackendVariant.SNOWFLAKE_API_ARROW)


VARIANT_ALIASES = {
    "snowflake-connector-rs": BackendVariant.SNOWFLAKE_CONNECTOR.value,
    "snowflake-connector-python": BackendVariant.SNOWFLAKE_CONNECTOR.value,
}

CLIENT_CHOICES = [v.value for v in BackendVariant] + sorted(VARIANT_ALIASES)


def request_timeout_for(variant: BackendVariant) -> Optional[float]:
    """Configured request timeout (seconds) for a backend; None keeps the driver default."""
    if variant is BackendVariant.ADBC:
        return settings.ADBC_REQUEST_TIMEOUT
    if variant is BackendVariant.SNOWFLAKE_CONNECTOR:
        return settings.SNOWFLAKE_CONNECTOR_REQUEST_TIMEOUT
    return settings.SNOWFLAKE_API_REQUEST_TIMEOUT


@dataclass
class QueryOutcome:
    """
    What one execution produced: a lazy batch stream or a row/record count.

    ``batches`` can be consumed once, and only while the execution context
    that produced it is open.
    """

    batches: Optional[AsyncIterator[pa.RecordBatch]] = None
    row_count: Optional[int] = None

    async def drain(self) -> int:
        """Consume the whole result and return the number of rows."""
        if self.batches is None:
            return int(self.row_count or 0)
        total = 0
        async for batch in self.batches:
            total += batch.num_rows
        return total


async def _no_batches() -> AsyncIterator[pa.RecordBatch]:
    return
    yield


class BackendClient:
    """
    Runs SQL through one backend variant.

    Credentials are resolved (and rejected) when the client is built, before
    any network traffic. Every ``execute`` opens a fresh connection; nothing is
    pooled across executions so each call measures connection setup too.
    """

    def __init__(
        self,
        variant: BackendVariant,
        profile: Profile,
        *,
        request_timeout: Optional[float] = None,
        executor: Optional[Executor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.variant = variant
        self.profile = profile
        self.request_timeout = (
            request_timeout if request_timeout is not None else request_timeout_for(variant)
        )
        self.credentials = self.authenticate()

        if variant is BackendVariant.ADBC:
            self._connector = AdbcConnector(
                profile,
                self.credentials,
                request_timeout=self.request_timeout,
                executor=executor,
            )
        elif variant is BackendVariant.SNOWFLAKE_CONNECTOR:
            self._connector = SnowflakeConnectorClient(
                profile,
                self.credentials,
                request_timeout=self.request_timeout,
                executor=executor,
            )
        else:
            self._connector = SnowflakeApiConnector(
                profile,
                self.credentials,
                request_timeout=self.request_timeout,
                transport=transport,
            )

        logger.info(
            "Initialized %s client: %s@%s (auth=%s, timeout=%s)",
            variant.value,
            profile.user,
            profile.account,
            self.credentials.method.value,
            self.request_timeout,
        )

    @property
    def name(self) -> str:
        return self.variant.value

    def authenticate(self) -> Credentials:
        """
        Pick the authentication material this backend will use.

        Raises:
            MissingCredential: Required field or secret absent
            UnsupportedKeyFormat: Private key form not usable by this backend
        """
        profile = self.profile
        variant = self.variant

        if variant is not BackendVariant.ADBC:
            if not profile.account:
                raise MissingCredential("Account is required")
            if not profile.user:
                raise MissingCredential("User is required")

        if profile.private_key and profile.private_key.strip():
            pem = profile.private_key.strip()
            key_format = classify_private_key(pem)

            if variant is BackendVariant.SNOWFLAKE_CONNECTOR:
                if key_format is KeyFormat.UNENCRYPTED:
                    raise UnsupportedKeyFormat(
                        f"{variant.value} key-pair authentication requires an encrypted "
                        "private key (ENCRYPTED PRIVATE KEY). The provided key appears to "
                        "be unencrypted. Please use an encrypted key or use password "
                        "authentication instead."
                    )
            if key_format is KeyFormat.INVALID:
                raise UnsupportedKeyFormat("Invalid private key format")
            if key_format is KeyFormat.ENCRYPTED and not profile.password:
                raise MissingCredential(
                    "An encrypted private key requires the profile password as its passphrase"
                )

            return Credentials(
                method=AuthMethod.KEY_PAIR,
                password=profile.password,
                private_key_pem=pem,
                key_format=key_format,
            )

        if profile.password:
            return Credentials(method=AuthMethod.PASSWORD, password=profile.password)

        raise MissingCredential(
            "Either password or private_key is required for authentication"
        )

    @asynccontextmanager
    async def execute(self, sql: str) -> AsyncIterator[QueryOutcome]:
        """
        Execute ``sql`` on a fresh connection (async context manager).

        Usage:
            async with client.execute("SELECT 1") as outcome:
                rows = await outcome.drain()

        Yields:
            QueryOutcome carrying batches (adbc, snowflake-api-arrow) or a
            count (snowflake-connector, snowflake-api-json).

        Raises:
            ConnectionFailure, QueryExecutionFailure: From the driver
            ResultShapeMismatch: The API returned the other result shape
        """
        variant = self.variant
        logger.debug("Executing on %s: %s", variant.value, sql)

        if variant is BackendVariant.ADBC:
            async with self._connector.execute(sql) as batches:
                yield QueryOutcome(batches=batches)

        elif variant is BackendVariant.SNOWFLAKE_CONNECTOR:
            row_count = await self._connector.execute(sql)
            yield QueryOutcome(row_count=row_count)

        elif variant is BackendVariant.SNOWFLAKE_API_ARROW:
            async with self._connector.session() as session:
                result = await session.query(sql)
                if result.format is ResultFormat.JSON:
                    raise ResultShapeMismatch(
                        "Expected Arrow result but got JSON. Use snowflake-api-json client "
                        "for JSON results, or ensure your query returns Arrow format "
                        "(SELECT queries typically return Arrow)"
                    )
                if result.format is ResultFormat.EMPTY:
                    yield QueryOutcome(batches=_no_batches())
                else:
                    yield QueryOutcome(batches=session.arrow_batches(result))

        elif variant is BackendVariant.SNOWFLAKE_API_JSON:
            async with self._connector.session() as session:
                result = await session.query(sql)
                if result.format is ResultFormat.ARROW:
                    raise ResultShapeMismatch(
                        "Expected JSON result but got Arrow. Use snowflake-api-arrow client "
                        "for Arrow results, or use a non-SELECT query (like SHOW, DESCRIBE) "
                        "which typically return JSON"
                    )
                if result.format is ResultFormat.EMPTY:
                    yield QueryOutcome(row_count=0)
                else:
                    rows = await session.json_value(result)
                    yield QueryOutcome(row_count=len(rows))

        else:
            raise ValueError(f"Unknown client: {variant}")
