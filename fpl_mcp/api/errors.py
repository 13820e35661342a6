# fpl_mcp/api/errors.py
"""
Error taxonomy for FPL MCP.

Provides:
1. Error code constants for consistent error handling
2. Custom exception hierarchy for the upstream API, cache and database layers

Upstream failures are never retried here; callers decide what to do with them.
"""

from typing import Any, Dict, Optional


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode:
    """Standard error codes for FPL MCP."""

    # Client errors (4xx equivalent)
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    INVALID_PARAMETER = "INVALID_PARAMETER"

    # Upstream errors (5xx equivalent)
    FPL_API_ERROR = "FPL_API_ERROR"

    # Infrastructure errors
    CACHE_ERROR = "CACHE_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    SYNC_FAILED = "SYNC_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# EXCEPTION HIERARCHY
# ============================================================================


class FPLMCPError(Exception):
    """Base exception for all FPL MCP errors."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for ResponseEnvelope."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class EntityNotFoundError(FPLMCPError):
    """Raised when a team/player/gameweek cannot be resolved."""

    def __init__(self, entity_type: str, query: Any):
        super().__init__(
            message=f"{entity_type.capitalize()} '{query}' not found",
            code=ErrorCode.ENTITY_NOT_FOUND,
            details={"entity_type": entity_type, "query": str(query)},
        )


class InvalidParameterError(FPLMCPError):
    """Raised when tool parameters are invalid."""

    def __init__(self, param_name: str, param_value: Any, expected: str):
        super().__init__(
            message=f"Invalid parameter '{param_name}': got {param_value}, expected {expected}",
            code=ErrorCode.INVALID_PARAMETER,
            details={
                "param_name": param_name,
                "param_value": str(param_value),
                "expected": expected,
            },
        )


class FPLApiError(FPLMCPError):
    """Raised when the FPL API request fails or returns an unusable body."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.FPL_API_ERROR,
            details={"status_code": status_code, "endpoint": endpoint},
        )
        self.status_code = status_code
        self.endpoint = endpoint


class CacheError(FPLMCPError):
    """Raised when the key-value store rejects or fails an operation."""

    def __init__(self, operation: str, key: Optional[str], cause: Exception):
        super().__init__(
            message=f"Cache {operation} failed for {key!r}: {cause}",
            code=ErrorCode.CACHE_ERROR,
            details={"operation": operation, "key": key, "cause": type(cause).__name__},
        )
        self.operation = operation
        self.key = key
        self.cause = cause


class PersistenceError(FPLMCPError):
    """Raised when a relational store write or read fails."""

    def __init__(self, table: str, cause: Any):
        super().__init__(
            message=f"Database operation on '{table}' failed: {cause}",
            code=ErrorCode.PERSISTENCE_ERROR,
            details={"table": table},
        )
        self.table = table
        self.cause = cause
