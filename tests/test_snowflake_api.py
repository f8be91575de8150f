"""
Tests for the Snowflake HTTP API backends (snowflake-api-arrow / -json).

The server is simulated with ``httpx.MockTransport``; Arrow rowsets are
real IPC streams produced by pyarrow.
"""

import base64
import gzip
import json

import httpx
import jwt
import pyarrow as pa
import pytest

from querybench.connectors import BackendClient, BackendVariant
from querybench.connectors import snowflake_api
from querybench.connectors.keys import public_key_fingerprint
from querybench.connectors.snowflake_api import (
    LOGIN_PATH,
    QUERY_PATH,
    ApiQueryResult,
    ResultFormat,
)
from querybench.errors import (
    ConnectionFailure,
    QueryExecutionFailure,
    ResultShapeMismatch,
    classify_error,
)

from tests.conftest import KEY_PASSPHRASE, arrow_stream_bytes, make_batch, make_profile

pytestmark = pytest.mark.asyncio

CHUNK_URL = "https://chunks.example.com/results/0"


class FakeSnowflake:
    """Minimal login + query endpoint simulation."""

    def __init__(self, query_data=None, *, login=None, chunks=None, pending=0):
        self.query_data = query_data or {}
        self.login = login or {"success": True, "data": {"token": "session-token"}}
        self.chunks = chunks or {}
        self.pending = pending
        self.requests: list[httpx.Request] = []

    def _result(self) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": self.query_data})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == LOGIN_PATH:
            return httpx.Response(200, json=self.login)
        if path == QUERY_PATH:
            if self.pending:
                return httpx.Response(
                    200,
                    json={
                        "success": True,
                        "code": "333334",
                        "data": {"getResultUrl": "/queries/q-1/result"},
                    },
                )
            return self._result()
        if path == "/queries/q-1/result":
            self.pending -= 1
            if self.pending:
                return httpx.Response(
                    200,
                    json={
                        "success": True,
                        "code": "333333",
                        "data": {"getResultUrl": "/queries/q-1/result"},
                    },
                )
            return self._result()
        if str(request.url) in self.chunks:
            return httpx.Response(200, content=self.chunks[str(request.url)])
        return httpx.Response(404)

    def body(self, path: str) -> dict:
        for request in self.requests:
            if request.url.path == path:
                return json.loads(request.content)
        raise AssertionError(f"no request to {path}")


def _client(variant: BackendVariant, server: FakeSnowflake, **profile) -> BackendClient:
    return BackendClient(
        variant, make_profile(**profile), transport=httpx.MockTransport(server)
    )


def _arrow_data(*batches: pa.RecordBatch, chunks=None) -> dict:
    return {
        "queryId": "01b2-0000",
        "queryResultFormat": "arrow",
        "rowsetBase64": base64.b64encode(arrow_stream_bytes(batches)).decode("ascii"),
        "chunks": chunks or [],
    }


async def _rows(client: BackendClient, sql: str) -> int:
    async with client.execute(sql) as outcome:
        return await outcome.drain()


class TestArrowBackend:
    async def test_decodes_inline_rowset(self) -> None:
        batch = make_batch({"ID": [1, 2, 3], "NAME": ["a", "b", None]})
        server = FakeSnowflake(_arrow_data(batch))
        client = _client(BackendVariant.SNOWFLAKE_API_ARROW, server)

        async with client.execute("SELECT * FROM T") as outcome:
            batches = [b async for b in outcome.batches]

        assert len(batches) == 1
        assert batches[0].num_rows == 3
        assert batches[0].schema.names == ["ID", "NAME"]
        assert server.body(QUERY_PATH)["sqlText"] == "SELECT * FROM T"

    async def test_downloads_chunks_after_inline_rows(self) -> None:
        inline = make_batch({"N": [1, 2]})
        chunk = make_batch({"N": [3, 4, 5]})
        server = FakeSnowflake(
            _arrow_data(inline, chunks=[{"url": CHUNK_URL, "rowCount": 3}]),
            chunks={CHUNK_URL: gzip.compress(arrow_stream_bytes([chunk]))},
        )
        client = _client(BackendVariant.SNOWFLAKE_API_ARROW, server)

        assert await _rows(client, "SELECT N FROM T") == 5

    async def test_json_result_is_a_shape_mismatch(self) -> None:
        server = FakeSnowflake({"queryResultFormat": "json", "rowset": [["t1"]]})
        client = _client(BackendVariant.SNOWFLAKE_API_ARROW, server)

        with pytest.raises(ResultShapeMismatch, match="snowflake-api-json"):
            await _rows(client, "SHOW TABLES")

    async def test_empty_result_has_no_batches(self) -> None:
        server = FakeSnowflake({"queryResultFormat": "arrow", "rowsetBase64": ""})
        client = _client(BackendVariant.SNOWFLAKE_API_ARROW, server)

        async with client.execute("SELECT 1 WHERE FALSE") as outcome:
            assert [b async for b in outcome.batches] == []

    async def test_polls_until_query_completes(self, monkeypatch) -> None:
        monkeypatch.setattr(snowflake_api, "RESULT_POLL_INTERVAL_SECONDS", 0)
        server = FakeSnowflake(_arrow_data(make_batch({"N": [1]})), pending=2)
        client = _client(BackendVariant.SNOWFLAKE_API_ARROW, server)

        assert await _rows(client, "SELECT 1") == 1
        polls = [r for r in server.requests if r.url.path == "/queries/q-1/result"]
        assert len(polls) == 2


class TestJsonBackend:
    async def test_counts_rowset_entries(self) -> None:
        server = FakeSnowflake(
            {"queryResultFormat": "json", "rowset": [["t1", "x"], ["t2", "y"]]}
        )
        client = _client(BackendVariant.SNOWFLAKE_API_JSON, server)

        async with client.execute("SHOW TABLES") as outcome:
            assert outcome.batches is None
            assert outcome.row_count == 2

    async def test_counts_chunk_rows(self) -> None:
        server = FakeSnowflake(
            {
                "queryResultFormat": "json",
                "rowset": [["a", "1"]],
                "chunks": [{"url": CHUNK_URL, "rowCount": 2}],
                "qrmk": "bWFzdGVyLWtleQ==",
            },
            chunks={CHUNK_URL: gzip.compress(b'["b","2"],\n["c","3"]')},
        )
        client = _client(BackendVariant.SNOWFLAKE_API_JSON, server)

        assert await _rows(client, "SHOW TABLES") == 3
        chunk_request = next(r for r in server.requests if str(r.url) == CHUNK_URL)
        assert chunk_request.headers["x-amz-server-side-encryption-customer-key"] == (
            "bWFzdGVyLWtleQ=="
        )

    async def test_arrow_result_is_a_shape_mismatch(self) -> None:
        server = FakeSnowflake(_arrow_data(make_batch({"N": [1]})))
        client = _client(BackendVariant.SNOWFLAKE_API_JSON, server)

        with pytest.raises(ResultShapeMismatch, match="snowflake-api-arrow"):
            await _rows(client, "SELECT 1")

    async def test_empty_result_counts_zero(self) -> None:
        server = FakeSnowflake({"queryResultFormat": "json", "rowset": []})
        client = _client(BackendVariant.SNOWFLAKE_API_JSON, server)

        assert await _rows(client, "SHOW TABLES LIKE 'nothing'") == 0


class TestLogin:
    async def test_password_login(self) -> None:
        server = FakeSnowflake({"queryResultFormat": "json", "rowset": [[1]]})
        client = _client(BackendVariant.SNOWFLAKE_API_JSON, server)

        await _rows(client, "SHOW TABLES")

        data = server.body(LOGIN_PATH)["data"]
        assert data["ACCOUNT_NAME"] == "XY12345"
        assert data["LOGIN_NAME"] == "bench_user"
        assert data["PASSWORD"] == "hunter2"
        assert "AUTHENTICATOR" not in data

        login = server.requests[0]
        assert login.url.params["warehouse"] == "BENCH_WH"
        assert login.url.params["databaseName"] == "BENCH_DB"
        assert login.url.params["schemaName"] == "PUBLIC"
        assert login.url.params["roleName"] == "BENCH_ROLE"

        query = server.requests[1]
        assert query.headers["Authorization"] == 'Snowflake Token="session-token"'

    async def test_key_pair_login_sends_signed_jwt(self, rsa_key, encrypted_pem) -> None:
        server = FakeSnowflake({"queryResultFormat": "json", "rowset": [[1]]})
        client = _client(
            BackendVariant.SNOWFLAKE_API_JSON,
            server,
            password=KEY_PASSPHRASE,
            private_key=encrypted_pem,
        )

        await _rows(client, "SHOW TABLES")

        data = server.body(LOGIN_PATH)["data"]
        assert data["AUTHENTICATOR"] == "SNOWFLAKE_JWT"
        assert "PASSWORD" not in data

        claims = jwt.decode(data["TOKEN"], rsa_key.public_key(), algorithms=["RS256"])
        assert claims["sub"] == "XY12345.BENCH_USER"
        assert claims["iss"] == f"XY12345.BENCH_USER.{public_key_fingerprint(rsa_key)}"
        assert claims["exp"] - claims["iat"] == 60

    async def test_rejected_login_is_connection_failure(self) -> None:
        server = FakeSnowflake(
            login={
                "success": False,
                "code": "390100",
                "message": "Incorrect username or password was specified.",
            }
        )
        client = _client(BackendVariant.SNOWFLAKE_API_JSON, server)

        with pytest.raises(ConnectionFailure) as exc_info:
            await _rows(client, "SHOW TABLES")

        assert "(390100)" in str(exc_info.value)
        assert classify_error(exc_info.value).code == "SNOWFLAKE_AUTH_FAILED"
        assert [r.url.path for r in server.requests] == [LOGIN_PATH]


class TestQueryErrors:
    async def test_failed_statement(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == LOGIN_PATH:
                return httpx.Response(200, json={"success": True, "data": {"token": "t"}})
            return httpx.Response(
                200,
                json={
                    "success": False,
                    "code": "001003",
                    "message": "SQL compilation error: syntax error",
                },
            )

        client = BackendClient(
            BackendVariant.SNOWFLAKE_API_ARROW,
            make_profile(),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(QueryExecutionFailure, match="syntax error"):
            await _rows(client, "SELEC 1")

    async def test_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == LOGIN_PATH:
                return httpx.Response(200, json={"success": True, "data": {"token": "t"}})
            return httpx.Response(503)

        client = BackendClient(
            BackendVariant.SNOWFLAKE_API_JSON,
            make_profile(),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(QueryExecutionFailure):
            await _rows(client, "SHOW TABLES")


    async def test_corrupt_gzip_chunk(self) -> None:
        server = FakeSnowflake(
            _arrow_data(make_batch({"N": [1]}), chunks=[{"url": CHUNK_URL, "rowCount": 1}]),
            chunks={CHUNK_URL: gzip.compress(b"truncated payload")[:12]},
        )
        client = _client(BackendVariant.SNOWFLAKE_API_ARROW, server)

        with pytest.raises(QueryExecutionFailure, match="Malformed compressed result chunk"):
            await _rows(client, "SELECT N FROM T")

    async def test_non_utf8_json_chunk(self) -> None:
        server = FakeSnowflake(
            {
                "queryResultFormat": "json",
                "rowset": [["a"]],
                "chunks": [{"url": CHUNK_URL, "rowCount": 1}],
            },
            chunks={CHUNK_URL: b"[\"\xff\xfe\"]"},
        )
        client = _client(BackendVariant.SNOWFLAKE_API_JSON, server)

        with pytest.raises(QueryExecutionFailure, match="Malformed JSON chunk"):
            await _rows(client, "SHOW TABLES")


async def test_result_shape_detection() -> None:
    assert ApiQueryResult.from_response({}).format is ResultFormat.EMPTY
    assert (
        ApiQueryResult.from_response({"queryResultFormat": "arrow", "chunks": [{"url": "u"}]}).format
        is ResultFormat.ARROW
    )
    assert (
        ApiQueryResult.from_response({"queryResultFormat": "json", "rowset": [[1]]}).format
        is ResultFormat.JSON
    )
