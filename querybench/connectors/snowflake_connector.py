"""
Snowflake Python Connector

Row-oriented backend: opens a ``snowflake.connector`` connection per
execution, fetches every row and reports how many came back.
"""

import asyncio
import logging
from concurrent.futures import Executor
from typing import Any, Dict, Optional, cast

import snowflake.connector
from snowflake.connector import SnowflakeConnection
from snowflake.connector.errors import Error as SnowflakeError

from querybench.config import settings
from querybench.connectors.keys import (
    AuthMethod,
    Credentials,
    load_private_key,
    private_key_der,
)
from querybench.errors import ConnectionFailure, QueryExecutionFailure
from querybench.models import Profile

logger = logging.getLogger(__name__)


class SnowflakeConnectorClient:
    """
    Executes queries with snowflake-connector-python and counts the rows.
    """

    def __init__(
        self,
        profile: Profile,
        credentials: Credentials,
        *,
        request_timeout: Optional[float] = None,
        executor: Optional[Executor] = None,
        session_parameters: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            profile: Connection profile (account and user are required)
            credentials: Password or encrypted key-pair credentials
            request_timeout: Login/network timeout in seconds (None: driver default)
            executor: Executor for blocking driver calls
            session_parameters: Extra Snowflake session parameters
        """
        self.profile = profile
        self.credentials = credentials
        self.request_timeout = request_timeout
        self._executor = executor
        self._session_parameters: Dict[str, Any] = dict(session_parameters or {})

    def _run_in_executor(self, func, *args):
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, func, *args)

    def _get_connection_params(self) -> Dict[str, Any]:
        """Get connection parameters for snowflake.connector."""
        session_params: Dict[str, Any] = {"QUERY_TAG": settings.QUERY_TAG}
        session_params.update(self._session_parameters)
        params: Dict[str, Any] = {
            "account": self.profile.account,
            "user": self.profile.user,
            "session_parameters": session_params,
        }

        if self.request_timeout is not None:
            params["login_timeout"] = int(self.request_timeout)
            params["network_timeout"] = int(self.request_timeout)

        if self.credentials.method is AuthMethod.KEY_PAIR:
            key = load_private_key(
                self.credentials.private_key_pem or "",
                self.credentials.key_passphrase,
            )
            params["private_key"] = private_key_der(key)
        elif self.credentials.password:
            params["password"] = self.credentials.password

        if self.profile.warehouse:
            params["warehouse"] = self.profile.warehouse
        if self.profile.database:
            params["database"] = self.profile.database
        if self.profile.schema_name:
            params["schema"] = self.profile.schema_name
        if self.profile.role:
            params["role"] = self.profile.role
        if self.profile.client_session_keep_alive is not None:
            params["client_session_keep_alive"] = self.profile.client_session_keep_alive

        return params

    async def _create_connection(self) -> SnowflakeConnection:
        params = self._get_connection_params()
        try:
            conn = cast(
                SnowflakeConnection,
                await self._run_in_executor(
                    lambda: snowflake.connector.connect(**params)
                ),
            )
        except SnowflakeError as e:
            raise ConnectionFailure(f"Failed to create connection: {e}") from e

        logger.debug(f"Created new Snowflake connection: {id(conn)}")
        return conn

    async def _close(
        self, conn: SnowflakeConnection, cursor: Any, *, suppress: bool = False
    ) -> None:
        """Close cursor and connection; raise the first close error unless suppressed."""
        failure: Optional[SnowflakeError] = None
        for resource in (cursor, conn):
            if resource is None:
                continue
            try:
                await self._run_in_executor(resource.close)
            except SnowflakeError as e:
                logger.warning(f"Failed to close Snowflake {type(resource).__name__}: {e}")
                failure = failure or e
        logger.debug(f"Closed Snowflake connection: {id(conn)}")

        if failure is not None and not suppress:
            raise ConnectionFailure(f"Failed to close connection: {failure}") from failure

    async def execute(self, sql: str) -> int:
        """
        Execute a query on a fresh connection and return the number of rows.

        Raises:
            ConnectionFailure: If the connection cannot be opened or closed
            QueryExecutionFailure: If the query fails
        """
        conn = await self._create_connection()
        cursor = None
        try:
            try:
                cursor = await self._run_in_executor(conn.cursor)
                await self._run_in_executor(cursor.execute, sql)
                rows = await self._run_in_executor(cursor.fetchall)
            except SnowflakeError as e:
                raise QueryExecutionFailure(f"Failed to execute query: {e}") from e
        except BaseException:
            # Keep the original error; a failing close is only logged.
            await self._close(conn, cursor, suppress=True)
            raise

        await self._close(conn, cursor)
        return len(rows)
