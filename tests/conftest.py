"""
Global pytest configuration and fixtures for querybench tests.

This module provides:
- Throwaway RSA keys (encrypted and unencrypted PKCS#8 PEM)
- Profile factories
- Arrow batch helpers and a scripted fake backend client

Live warehouse tests are opt-in: set QUERYBENCH_LIVE_CONFIG to a profile file.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

import pyarrow as pa
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from querybench.connectors import QueryOutcome
from querybench.models import Profile

KEY_PASSPHRASE = "s3cret-passphrase"


def is_live_test() -> bool:
    """Check if live backend tests were requested."""
    return bool(os.getenv("QUERYBENCH_LIVE_CONFIG"))


# =============================================================================
# Keys and profiles
# =============================================================================


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def unencrypted_pem(rsa_key: rsa.RSAPrivateKey) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def encrypted_pem(rsa_key: rsa.RSAPrivateKey) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(
            KEY_PASSPHRASE.encode("utf-8")
        ),
    ).decode("ascii")


def make_profile(**overrides: Any) -> Profile:
    fields: dict[str, Any] = {
        "type": "snowflake",
        "account": "xy12345.us-east-1",
        "user": "bench_user",
        "password": "hunter2",
        "role": "BENCH_ROLE",
        "warehouse": "BENCH_WH",
        "database": "BENCH_DB",
        "schema": "PUBLIC",
    }
    fields.update(overrides)
    return Profile.model_validate(fields)


@pytest.fixture
def password_profile() -> Profile:
    return make_profile()


# =============================================================================
# Arrow helpers
# =============================================================================


def make_batch(columns: dict[str, list[Any]], types: Optional[dict[str, pa.DataType]] = None) -> pa.RecordBatch:
    types = types or {}
    arrays = [pa.array(values, type=types.get(name)) for name, values in columns.items()]
    return pa.RecordBatch.from_arrays(arrays, names=list(columns))


def arrow_stream_bytes(batches: Iterable[pa.RecordBatch]) -> bytes:
    batches = list(batches)
    sink = pa.BufferOutputStream()
    with pa.ipc.new_stream(sink, batches[0].schema) as writer:
        for batch in batches:
            writer.write_batch(batch)
    return sink.getvalue().to_pybytes()


async def aiter_batches(batches: Iterable[pa.RecordBatch]) -> AsyncIterator[pa.RecordBatch]:
    for batch in batches:
        yield batch


class ScriptedClient:
    """
    Stand-in for BackendClient that replays scripted outcomes.

    Each script entry is an int (row count), a list of batches, or an
    exception instance to raise when the execution starts.
    """

    def __init__(self, script: list[Any], name: str = "fake"):
        self.script = list(script)
        self.name = name
        self.executed: list[str] = []
        self.closed = 0

    @asynccontextmanager
    async def execute(self, sql: str):  # noqa: ANN201
        self.executed.append(sql)
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        try:
            if isinstance(step, int):
                yield QueryOutcome(row_count=step)
            else:
                yield QueryOutcome(batches=aiter_batches(step))
        finally:
            self.closed += 1
