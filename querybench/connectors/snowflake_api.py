"""
Snowflake HTTP API Connector

Talks to the Snowflake session API directly over HTTPS with httpx:

- ``POST /session/v1/login-request`` (password or SNOWFLAKE_JWT key-pair login)
- ``POST /queries/v1/query-request`` (synchronous query execution)

The server answers a query with either an Arrow rowset (``rowsetBase64`` plus
downloadable chunks) or a JSON rowset (``rowset`` plus JSON chunks). Which one
comes back depends on the statement: SELECTs typically return Arrow, while
SHOW / DESCRIBE return JSON. Callers decide which shapes they accept.
"""

from __future__ import annotations

import asyncio
import base64
import gzip
import json
import logging
import platform
import uuid
import zlib
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, AsyncIterator, Optional

import httpx
import jwt
import pyarrow as pa

from querybench import VERSION
from querybench.config import settings
from querybench.connectors.keys import (
    AuthMethod,
    Credentials,
    load_private_key,
    public_key_fingerprint,
)
from querybench.errors import ConnectionFailure, QueryExecutionFailure
from querybench.models import Profile

logger = logging.getLogger(__name__)

LOGIN_PATH = "/session/v1/login-request"
QUERY_PATH = "/queries/v1/query-request"

JWT_LIFETIME_SECONDS = 60

# Query still running; poll ``getResultUrl`` until it completes.
QUERY_IN_PROGRESS_CODES = {"333333", "333334"}
RESULT_POLL_INTERVAL_SECONDS = 0.5

GZIP_MAGIC = b"\x1f\x8b"


class ResultFormat(str, Enum):
    """Shape of a query response."""

    ARROW = "arrow"
    JSON = "json"
    EMPTY = "empty"


@dataclass
class ApiQueryResult:
    """Raw query response data, before any chunk has been downloaded."""

    format: ResultFormat
    query_id: Optional[str] = None
    rowset_base64: str = ""
    rowset: list[Any] = field(default_factory=list)
    chunks: list[dict[str, Any]] = field(default_factory=list)
    chunk_headers: dict[str, str] = field(default_factory=dict)
    returned: Optional[int] = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "ApiQueryResult":
        result_format = str(data.get("queryResultFormat") or "json").lower()
        rowset_base64 = data.get("rowsetBase64") or ""
        rowset = data.get("rowset") or []
        chunks = list(data.get("chunks") or [])

        chunk_headers = dict(data.get("chunkHeaders") or {})
        qrmk = data.get("qrmk")
        if not chunk_headers and qrmk:
            chunk_headers = {
                "x-amz-server-side-encryption-customer-algorithm": "AES256",
                "x-amz-server-side-encryption-customer-key": qrmk,
            }

        if result_format == ResultFormat.ARROW.value:
            shape = ResultFormat.ARROW if (rowset_base64 or chunks) else ResultFormat.EMPTY
        else:
            shape = ResultFormat.JSON if (rowset or chunks) else ResultFormat.EMPTY

        return cls(
            format=shape,
            query_id=data.get("queryId"),
            rowset_base64=rowset_base64,
            rowset=list(rowset),
            chunks=chunks,
            chunk_headers=chunk_headers,
            returned=data.get("returned"),
        )


def _decode_body(content: bytes) -> bytes:
    # Result chunks are sometimes served gzip'd without a Content-Encoding header.
    if content[:2] == GZIP_MAGIC:
        return gzip.decompress(content)
    return content


def _read_arrow_stream(raw: bytes) -> list[pa.RecordBatch]:
    if not raw:
        return []
    reader = pa.ipc.open_stream(pa.py_buffer(raw))
    return [batch for batch in reader]


class SnowflakeApiSession:
    """A logged-in session bound to one httpx client."""

    def __init__(self, client: httpx.AsyncClient, token: str):
        self._client = client
        self._token = token

    @property
    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f'Snowflake Token="{self._token}"'}

    async def query(self, sql: str) -> ApiQueryResult:
        """
        Execute ``sql`` and return the raw result description.

        Raises:
            QueryExecutionFailure: On transport errors or a failed response
        """
        body = {
            "sqlText": sql,
            "asyncExec": False,
            "sequenceId": 1,
            "isInternal": False,
        }
        try:
            response = await self._client.post(
                QUERY_PATH,
                params={"requestId": str(uuid.uuid4())},
                json=body,
                headers=self.auth_headers,
            )
            response.raise_for_status()
            payload = response.json()

            while str(payload.get("code") or "") in QUERY_IN_PROGRESS_CODES:
                result_url = (payload.get("data") or {}).get("getResultUrl")
                if not result_url:
                    break
                await asyncio.sleep(RESULT_POLL_INTERVAL_SECONDS)
                response = await self._client.get(result_url, headers=self.auth_headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise QueryExecutionFailure(f"Failed to execute query: {e}") from e
        except ValueError as e:
            raise QueryExecutionFailure(f"Malformed query response: {e}") from e

        if not payload.get("success"):
            message = payload.get("message") or "unknown error"
            code = payload.get("code")
            raise QueryExecutionFailure(
                f"Failed to execute query: {message}" + (f" ({code})" if code else "")
            )

        result = ApiQueryResult.from_response(payload.get("data") or {})
        logger.debug(
            "Query %s returned %s result with %d chunk(s)",
            result.query_id,
            result.format.value,
            len(result.chunks),
        )
        return result

    async def _download_chunk(self, result: ApiQueryResult, chunk: dict[str, Any]) -> bytes:
        url = chunk.get("url")
        if not url:
            raise QueryExecutionFailure("Result chunk has no download URL")
        logger.debug("Downloading result chunk (%s rows)", chunk.get("rowCount"))
        try:
            response = await self._client.get(url, headers=result.chunk_headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise QueryExecutionFailure(f"Failed to download result chunk: {e}") from e
        try:
            return _decode_body(response.content)
        except (OSError, EOFError, zlib.error) as e:
            raise QueryExecutionFailure(f"Malformed compressed result chunk: {e}") from e

    async def arrow_batches(self, result: ApiQueryResult) -> AsyncIterator[pa.RecordBatch]:
        """
        Yield the record batches of an Arrow result; chunks download lazily.
        """
        try:
            inline = _read_arrow_stream(base64.b64decode(result.rowset_base64))
        except (ValueError, pa.ArrowException) as e:
            raise QueryExecutionFailure(f"Malformed Arrow rowset: {e}") from e
        for batch in inline:
            yield batch

        for chunk in result.chunks:
            raw = await self._download_chunk(result, chunk)
            try:
                batches = _read_arrow_stream(raw)
            except pa.ArrowException as e:
                raise QueryExecutionFailure(f"Malformed Arrow chunk: {e}") from e
            for batch in batches:
                yield batch

    async def json_value(self, result: ApiQueryResult) -> list[Any]:
        """The full JSON rowset (inline rows followed by every chunk's rows)."""
        rows: list[Any] = list(result.rowset)
        for chunk in result.chunks:
            raw = await self._download_chunk(result, chunk)
            try:
                text = raw.decode("utf-8").strip()
                if not text:
                    continue
                # Chunks hold comma-separated row arrays without the enclosing brackets.
                if not text.startswith("[["):
                    text = f"[{text}]"
                rows.extend(json.loads(text))
            except ValueError as e:
                raise QueryExecutionFailure(f"Malformed JSON chunk: {e}") from e
        return rows


class SnowflakeApiConnector:
    """
    Opens HTTP API sessions for one profile.

    Every call to ``session()`` creates a new HTTP client and logs in again,
    so each execution pays the full connection cost.
    """

    def __init__(
        self,
        profile: Profile,
        credentials: Credentials,
        *,
        request_timeout: Optional[float] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.profile = profile
        self.credentials = credentials
        self.request_timeout = request_timeout
        self._base_url = base_url or settings.SNOWFLAKE_API_BASE_URL
        self._transport = transport

    @property
    def account_name(self) -> str:
        # "xy12345.us-east-1" logs in as account "XY12345".
        return (self.profile.account or "").split(".")[0].upper()

    @property
    def base_url(self) -> str:
        if self._base_url:
            return self._base_url.rstrip("/")
        host = (self.profile.account or "").lower().replace("_", "-")
        return f"https://{host}.snowflakecomputing.com"

    def jwt_token(self, now: Optional[datetime] = None) -> str:
        """RS256 JWT for SNOWFLAKE_JWT login."""
        key = load_private_key(
            self.credentials.private_key_pem or "", self.credentials.key_passphrase
        )
        issued = now or datetime.now(UTC)
        qualified_user = f"{self.account_name}.{(self.profile.user or '').upper()}"
        payload = {
            "iss": f"{qualified_user}.{public_key_fingerprint(key)}",
            "sub": qualified_user,
            "iat": issued,
            "exp": issued + timedelta(seconds=JWT_LIFETIME_SECONDS),
        }
        return jwt.encode(payload, key, algorithm="RS256")

    def login_params(self) -> dict[str, str]:
        params = {"request_id": str(uuid.uuid4())}
        if self.profile.warehouse:
            params["warehouse"] = self.profile.warehouse
        if self.profile.database:
            params["databaseName"] = self.profile.database
        if self.profile.schema_name:
            params["schemaName"] = self.profile.schema_name
        if self.profile.role:
            params["roleName"] = self.profile.role
        return params

    def login_body(self) -> dict[str, Any]:
        session_parameters: dict[str, Any] = {"QUERY_TAG": settings.QUERY_TAG}
        if self.profile.client_session_keep_alive is not None:
            session_parameters["CLIENT_SESSION_KEEP_ALIVE"] = (
                self.profile.client_session_keep_alive
            )

        data: dict[str, Any] = {
            "CLIENT_APP_ID": settings.SNOWFLAKE_API_CLIENT_APP_ID,
            "CLIENT_APP_VERSION": settings.SNOWFLAKE_API_CLIENT_APP_VERSION,
            "SVN_REVISION": "",
            "ACCOUNT_NAME": self.account_name,
            "LOGIN_NAME": self.profile.user,
            "CLIENT_ENVIRONMENT": {
                "APPLICATION": f"querybench/{VERSION}",
                "OS": platform.system(),
                "OS_VERSION": platform.release(),
            },
            "SESSION_PARAMETERS": session_parameters,
        }

        if self.credentials.method is AuthMethod.KEY_PAIR:
            data["AUTHENTICATOR"] = "SNOWFLAKE_JWT"
            data["TOKEN"] = self.jwt_token()
        else:
            data["PASSWORD"] = self.credentials.password

        return {"data": data}

    async def _login(self, client: httpx.AsyncClient) -> str:
        body = self.login_body()
        try:
            response = await client.post(LOGIN_PATH, params=self.login_params(), json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise ConnectionFailure(f"Failed to connect to Snowflake: {e}") from e
        except ValueError as e:
            raise ConnectionFailure(f"Malformed login response: {e}") from e

        if not payload.get("success"):
            message = payload.get("message") or "unknown error"
            code = payload.get("code")
            raise ConnectionFailure(
                f"Login failed: {message}" + (f" ({code})" if code else "")
            )

        token = (payload.get("data") or {}).get("token")
        if not token:
            raise ConnectionFailure("Login failed: response carried no session token")

        logger.debug("Logged in to %s as %s", self.base_url, self.profile.user)
        return token

    @asynccontextmanager
    async def session(self) -> AsyncIterator[SnowflakeApiSession]:
        """
        Log in on a new HTTP client (async context manager).

        Usage:
            async with connector.session() as session:
                result = await session.query("SHOW TABLES")
        """
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.request_timeout),
            transport=self._transport,
            headers={
                "Accept": "application/snowflake",
                "User-Agent": f"querybench/{VERSION}",
            },
        ) as client:
            token = await self._login(client)
            yield SnowflakeApiSession(client, token)
