"""Exception hierarchy for PostgreSQL operations."""

from typing import Optional


class PgOpsError(Exception):
    """Base exception for pg_ops_mcp errors."""

    @property
    def details(self) -> str:
        """Error rendered with its class name, as reported in item outcomes."""
        return f"{type(self).__name__}: {self}"


class ValidationError(PgOpsError):
    """Bad or missing operation input, detected before any network call."""


class CredentialError(PgOpsError):
    """Missing or incomplete connection parameters."""


class ConfigurationError(PgOpsError):
    """Unknown operation or otherwise unusable run configuration."""


class QueryError(PgOpsError):
    """Driver-reported failure: syntax, constraint, connectivity, timeout or auth."""

    def __init__(
        self,
        message: str,
        *,
        sqlstate: Optional[str] = None,
        code: Optional[str] = None,
        kind: str = "query",
    ):
        super().__init__(message)
        self.driver_message = message
        self.sqlstate = sqlstate
        # sqlstate when the server answered, errno-style symbol otherwise
        self.code = code or sqlstate
        self.kind = kind

    @property
    def is_timeout(self) -> bool:
        return self.kind == "timeout"
