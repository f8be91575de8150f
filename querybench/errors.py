"""
Error types and user-facing error classification.

Goal: keep Snowflake connectivity issues (VPN / network policy / IP allowlist)
distinguishable from bad credentials and bad SQL when they reach the terminal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from querybench.config import settings

logger = logging.getLogger(__name__)


class QueryBenchError(Exception):
    """Base exception for querybench."""


class ConfigError(QueryBenchError):
    """Profile file unreadable/unparseable, or profile name not found."""


class CredentialError(QueryBenchError):
    """Authentication material missing or unusable for the selected backend."""


class MissingCredential(CredentialError):
    pass


class UnsupportedKeyFormat(CredentialError):
    pass


class ConnectionFailure(QueryBenchError):
    pass


class QueryExecutionFailure(QueryBenchError):
    pass


class ResultShapeMismatch(QueryBenchError):
    """The query result came back in a shape the selected backend cannot report."""


class AggregationError(QueryBenchError):
    pass


@dataclass(frozen=True, slots=True)
class ErrorHint:
    code: str
    message: str
    hint: str | None = None
    debug: str | None = None


def _maybe_debug(exc: BaseException) -> str | None:
    if settings.APP_DEBUG:
        return str(exc)
    return None


def classify_error(exc: BaseException) -> ErrorHint | None:
    """
    Classify Snowflake connectivity failures into user-actionable hints.

    Uses string matching because the wrapped driver exceptions differ per
    backend (ADBC, snowflake-connector, HTTP) while the server text is shared.
    Walks the ``__cause__`` chain so wrapped driver errors are still recognized.
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        lower = str(current).lower()

        # Snowflake network policy / VPN / IP allowlist failure.
        if ("ip/token" in lower and "not allowed" in lower) or (
            "is not allowed to access snowflake" in lower
        ):
            return ErrorHint(
                code="SNOWFLAKE_IP_NOT_ALLOWED",
                message="Snowflake access blocked by network policy (VPN / IP allowlist).",
                hint="Connect to your VPN (or allowlist your current IP in Snowflake), then retry.",
                debug=_maybe_debug(current),
            )

        # Generic connection failure (covers many 08001 cases).
        if "failed to connect to db" in lower or "(08001)" in lower:
            return ErrorHint(
                code="SNOWFLAKE_CONNECTION_FAILED",
                message="Failed to connect to Snowflake.",
                hint="Check VPN/network access and the profile's account identifier, then retry.",
                debug=_maybe_debug(current),
            )

        if "incorrect username or password" in lower or "jwt token is invalid" in lower:
            return ErrorHint(
                code="SNOWFLAKE_AUTH_FAILED",
                message="Snowflake rejected the profile's credentials.",
                hint="Check user, password or the public key registered for the user.",
                debug=_maybe_debug(current),
            )

        current = current.__cause__

    return None


def describe_error(exc: BaseException) -> list[str]:
    """
    Render an exception as the lines printed to stderr at the top level.

    A classified error adds a ``Hint:`` line (what went wrong, then what to
    do about it) and, in debug mode, the raw driver text.
    """
    lines = [f"Error: {exc}"]
    hint = classify_error(exc)
    if hint is not None:
        logger.debug("Classified %s as %s", type(exc).__name__, hint.code)
        text = f"Hint: {hint.message}"
        if hint.hint:
            text += f" {hint.hint}"
        lines.append(text)
        if hint.debug and hint.debug != str(exc):
            lines.append(f"Debug: {hint.debug}")
    return lines
