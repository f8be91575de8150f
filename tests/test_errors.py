"""Tests for error classification and the stderr rendering."""

import pytest

from querybench.config import settings
from querybench.errors import (
    ConnectionFailure,
    QueryExecutionFailure,
    classify_error,
    describe_error,
)


@pytest.mark.parametrize(
    "message, code",
    [
        ("IP/Token 10.1.2.3 is not allowed to access Snowflake.", "SNOWFLAKE_IP_NOT_ALLOWED"),
        ("250001 (08001): Failed to connect to DB: xy12345.snowflakecomputing.com:443", "SNOWFLAKE_CONNECTION_FAILED"),
        ("Incorrect username or password was specified.", "SNOWFLAKE_AUTH_FAILED"),
        ("JWT token is invalid.", "SNOWFLAKE_AUTH_FAILED"),
    ],
)
def test_classifies_known_failures(message: str, code: str) -> None:
    hint = classify_error(ConnectionFailure(message))
    assert hint is not None
    assert hint.code == code
    assert hint.hint


def test_walks_cause_chain() -> None:
    try:
        try:
            raise OSError("IP/Token 10.1.2.3 is not allowed to access Snowflake")
        except OSError as e:
            raise ConnectionFailure("Failed to create connection") from e
    except ConnectionFailure as wrapped:
        hint = classify_error(wrapped)

    assert hint is not None
    assert hint.code == "SNOWFLAKE_IP_NOT_ALLOWED"


def test_unrelated_errors_have_no_hint() -> None:
    error = QueryExecutionFailure("SQL compilation error: invalid identifier 'X'")
    assert classify_error(error) is None
    assert describe_error(error) == ["Error: SQL compilation error: invalid identifier 'X'"]


def test_debug_line_only_in_debug_mode(monkeypatch) -> None:
    cause = OSError("Failed to connect to DB: host unreachable")
    error = ConnectionFailure("Failed to create connection")
    error.__cause__ = cause

    monkeypatch.setattr(settings, "APP_DEBUG", False)
    assert not any(line.startswith("Debug:") for line in describe_error(error))

    monkeypatch.setattr(settings, "APP_DEBUG", True)
    lines = describe_error(error)
    assert lines[0] == "Error: Failed to create connection"
    assert lines[1].startswith("Hint:")
    assert lines[2] == "Debug: Failed to connect to DB: host unreachable"


def test_hint_line_carries_cause_and_remedy() -> None:
    lines = describe_error(ConnectionFailure("Incorrect username or password was specified."))

    assert lines == [
        "Error: Incorrect username or password was specified.",
        "Hint: Snowflake rejected the profile's credentials. "
        "Check user, password or the public key registered for the user.",
    ]
