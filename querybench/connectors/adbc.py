"""
ADBC Snowflake Connector

Native-protocol backend: opens an ADBC connection through
``adbc_driver_snowflake`` and streams results as Arrow record batches.
A new connection is opened for every execution.
"""

import asyncio
import logging
from concurrent.futures import Executor
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import adbc_driver_snowflake.dbapi
import pyarrow as pa
from adbc_driver_manager import dbapi as adbc_dbapi

from querybench.connectors.keys import AuthMethod, Credentials
from querybench.errors import ConnectionFailure, QueryExecutionFailure
from querybench.models import Profile

logger = logging.getLogger(__name__)

OPT_USERNAME = "username"
OPT_PASSWORD = "password"
OPT_ACCOUNT = "adbc.snowflake.sql.account"
OPT_DATABASE = "adbc.snowflake.sql.db"
OPT_SCHEMA = "adbc.snowflake.sql.schema"
OPT_WAREHOUSE = "adbc.snowflake.sql.warehouse"
OPT_ROLE = "adbc.snowflake.sql.role"
OPT_AUTH_TYPE = "adbc.snowflake.sql.auth_type"
OPT_JWT_KEY_VALUE = "adbc.snowflake.sql.client_option.jwt_private_key_pkcs8_value"
OPT_JWT_KEY_PASSWORD = "adbc.snowflake.sql.client_option.jwt_private_key_pkcs8_password"
OPT_KEEP_SESSION_ALIVE = "adbc.snowflake.sql.client_option.keep_session_alive"
OPT_LOGIN_TIMEOUT = "adbc.snowflake.sql.client_option.login_timeout"
OPT_REQUEST_TIMEOUT = "adbc.snowflake.sql.client_option.request_timeout"

AUTH_TYPE_JWT = "auth_jwt"


def _next_batch(reader: pa.RecordBatchReader) -> Optional[pa.RecordBatch]:
    try:
        return reader.read_next_batch()
    except StopIteration:
        return None


class AdbcConnector:
    """
    Runs queries through the ADBC Snowflake driver.

    Driver calls block, so each one is dispatched to ``executor`` (the loop's
    default executor when None).
    """

    def __init__(
        self,
        profile: Profile,
        credentials: Credentials,
        *,
        request_timeout: Optional[float] = None,
        executor: Optional[Executor] = None,
    ):
        self.profile = profile
        self.credentials = credentials
        self.request_timeout = request_timeout
        self._executor = executor

    def _run_in_executor(self, func, *args):
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, func, *args)

    def db_kwargs(self) -> Dict[str, str]:
        """Database options for ``adbc_driver_snowflake.dbapi.connect``."""
        profile = self.profile
        kwargs: Dict[str, str] = {}

        if profile.account:
            kwargs[OPT_ACCOUNT] = profile.account
        if profile.user:
            kwargs[OPT_USERNAME] = profile.user

        if self.credentials.method is AuthMethod.KEY_PAIR:
            kwargs[OPT_AUTH_TYPE] = AUTH_TYPE_JWT
            kwargs[OPT_JWT_KEY_VALUE] = (self.credentials.private_key_pem or "").strip()
            if self.credentials.key_passphrase:
                kwargs[OPT_JWT_KEY_PASSWORD] = self.credentials.key_passphrase
        elif self.credentials.password:
            kwargs[OPT_PASSWORD] = self.credentials.password

        if profile.role:
            kwargs[OPT_ROLE] = profile.role
        if profile.warehouse:
            kwargs[OPT_WAREHOUSE] = profile.warehouse
        if profile.database:
            kwargs[OPT_DATABASE] = profile.database
        if profile.schema_name:
            kwargs[OPT_SCHEMA] = profile.schema_name
        if profile.client_session_keep_alive is not None:
            kwargs[OPT_KEEP_SESSION_ALIVE] = str(profile.client_session_keep_alive).lower()

        if self.request_timeout is not None:
            # Driver durations use Go syntax ("30s").
            timeout = f"{float(self.request_timeout):g}s"
            kwargs[OPT_LOGIN_TIMEOUT] = timeout
            kwargs[OPT_REQUEST_TIMEOUT] = timeout

        return kwargs

    def _connect(self) -> Any:
        return adbc_driver_snowflake.dbapi.connect(db_kwargs=self.db_kwargs())

    @asynccontextmanager
    async def execute(self, sql: str) -> AsyncIterator[AsyncIterator[pa.RecordBatch]]:
        """
        Execute ``sql`` on a fresh connection.

        Usage:
            async with connector.execute("SELECT 1") as batches:
                async for batch in batches:
                    ...

        Yields:
            Async iterator over the result's record batches. The connection is
            closed when the context exits.
        """
        try:
            conn = await self._run_in_executor(self._connect)
        except adbc_dbapi.Error as e:
            raise ConnectionFailure(f"Failed to create connection: {e}") from e

        logger.debug("Opened ADBC connection %s", id(conn))
        cursor = None
        try:
            try:
                cursor = await self._run_in_executor(conn.cursor)
                await self._run_in_executor(cursor.execute, sql)
                reader = await self._run_in_executor(cursor.fetch_record_batch)
            except adbc_dbapi.Error as e:
                raise QueryExecutionFailure(f"Failed to execute query: {e}") from e

            yield self._iter_batches(reader)
        except BaseException:
            # Keep the original error; a failing close is only logged.
            await self._close(conn, cursor, suppress=True)
            raise
        else:
            await self._close(conn, cursor)

    async def _close(self, conn: Any, cursor: Any, *, suppress: bool = False) -> None:
        """
        Close the cursor and then the connection.

        Both closes are attempted. Unless ``suppress`` is set, the first close
        error is raised as ConnectionFailure once both have run.
        """
        failure: Optional[adbc_dbapi.Error] = None
        for resource in (cursor, conn):
            if resource is None:
                continue
            try:
                await self._run_in_executor(resource.close)
            except adbc_dbapi.Error as e:
                logger.warning("Failed to close ADBC %s: %s", type(resource).__name__, e)
                failure = failure or e
        logger.debug("Closed ADBC connection %s", id(conn))

        if failure is not None and not suppress:
            raise ConnectionFailure(f"Failed to close connection: {failure}") from failure

    async def _iter_batches(
        self, reader: pa.RecordBatchReader
    ) -> AsyncIterator[pa.RecordBatch]:
        while True:
            try:
                batch = await self._run_in_executor(_next_batch, reader)
            except (adbc_dbapi.Error, pa.ArrowException) as e:
                raise QueryExecutionFailure(f"Failed to fetch results: {e}") from e
            if batch is None:
                return
            yield batch
