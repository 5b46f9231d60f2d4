"""Exception hierarchy for GridStream.

All exceptions carry an exit_code for CLI return value mapping.
Engine failures are grouped into the classes the data adapter reacts to:
recoverable ones (EngineUnavailable, SchemaMismatch) get a single silent
retry, the rest are surfaced to the user as messages.
"""

from __future__ import annotations

import psycopg
import psycopg.errors
import psycopg_pool

from gridstream.core.exit_codes import ExitCode


class GridStreamError(Exception):
    """Base exception for all GridStream errors."""

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NetworkError(GridStreamError):
    """Connection failures, unreachable host."""

    exit_code: int = ExitCode.NETWORK_ERROR


class TimeoutError(NetworkError):
    """Statement timeout, connection timeout."""

    exit_code: int = ExitCode.TIMEOUT


class InputError(GridStreamError):
    """File not found, invalid parameters."""

    exit_code: int = ExitCode.INPUT_ERROR


class ConfigError(GridStreamError):
    """Malformed config, missing profile."""

    exit_code: int = ExitCode.CONFIG_ERROR


class EngineError(GridStreamError):
    """Query engine failure that matches no known class."""

    exit_code: int = ExitCode.DATA_SOURCE_ERROR
    recoverable: bool = False
    user_message: str = (
        "Failed to read data from the data source. See logs for technical details."
    )


class EngineUnavailable(EngineError):
    """The underlying source handle was moved, deleted or became unreadable."""

    recoverable = True
    user_message = "Data source has been moved or deleted."


class SchemaMismatch(EngineError):
    """The source schema changed underneath an open query."""

    recoverable = True
    user_message = "Data source schema has changed. Please refresh the tab."


class ResourceExhausted(EngineError):
    """No pooled connection became available in time."""

    user_message = (
        "Too many tabs open or operations running. "
        "Please wait and re-open this tab."
    )


class OutOfMemory(EngineError):
    """The engine ran out of memory while executing the query."""

    user_message = (
        "The data source is too large to process in memory. "
        "Try using a SQL query to select specific columns or limit rows."
    )


class CancelledOperation(GridStreamError):
    """An operation was cancelled, either by the user or by the system.

    Not an error from the user's point of view; only awaiting callers
    ever observe it.
    """

    exit_code: int = ExitCode.CANCELLED

    def __init__(self, reason: str, *, is_user: bool = False) -> None:
        super().__init__(reason)
        self.reason = reason
        self.is_user = is_user

    @property
    def is_user_cancelled(self) -> bool:
        return self.is_user

    @property
    def is_system_cancelled(self) -> bool:
        return not self.is_user


class DataSourceError(GridStreamError):
    """Reading was halted by errors already surfaced on the adapter."""

    exit_code: int = ExitCode.DATA_SOURCE_ERROR

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Data source error")


class InvariantViolation(GridStreamError):
    """Adapter state became inconsistent. Always a bug."""


_SCHEMA_DRIFT_MESSAGES = ("cached plan must not change result type",)


def classify_engine_error(exc: BaseException) -> GridStreamError:
    """Translate a psycopg / psycopg_pool exception into the GridStream taxonomy.

    Exceptions that are already GridStreamError instances are returned as is.
    """
    if isinstance(exc, GridStreamError):
        return exc

    detail = str(exc) or exc.__class__.__name__

    if isinstance(exc, (psycopg_pool.PoolTimeout, psycopg_pool.TooManyRequests)):
        return ResourceExhausted(f"Connection pool exhausted: {detail}")
    if isinstance(exc, psycopg.errors.TooManyConnections):
        return ResourceExhausted(f"Too many connections: {detail}")
    if isinstance(exc, psycopg.errors.OutOfMemory):
        return OutOfMemory(f"Out of memory: {detail}")
    if isinstance(exc, (psycopg.errors.UndefinedTable, psycopg.errors.UndefinedColumn)):
        return SchemaMismatch(f"Schema mismatch: {detail}")
    if isinstance(exc, psycopg.errors.FeatureNotSupported) and any(
        m in detail for m in _SCHEMA_DRIFT_MESSAGES
    ):
        return SchemaMismatch(f"Schema mismatch: {detail}")
    if isinstance(exc, psycopg.errors.QueryCanceled):
        return TimeoutError(f"Query timed out: {detail}")
    if isinstance(
        exc,
        (
            psycopg.errors.UndefinedFile,
            psycopg.errors.AdminShutdown,
            psycopg.InterfaceError,
        ),
    ):
        return EngineUnavailable(f"Engine unavailable: {detail}")
    # Remaining operational errors are connection-level failures.
    if isinstance(exc, psycopg.OperationalError):
        return EngineUnavailable(f"Engine unavailable: {detail}")
    return EngineError(f"Engine error: {detail}")
