"""Exception taxonomy shared by services and routers."""
from __future__ import annotations


class GatewayError(RuntimeError):
    """Base class for errors surfaced to HTTP callers as ``{"error": ...}``."""

    status_code = 500


class ValidationError(GatewayError):
    """Raised when required input is missing or malformed."""

    status_code = 400


class NotFoundError(GatewayError):
    """Raised when a looked-up record does not exist."""

    status_code = 404


class UnauthorizedStatementError(GatewayError):
    """Raised when a SQL statement is outside the allowed command set."""


class GenerationError(GatewayError):
    """Raised when the LLM backend cannot be reached or returns an error."""


class DatabaseError(GatewayError):
    """Raised when a statement fails inside the database."""
