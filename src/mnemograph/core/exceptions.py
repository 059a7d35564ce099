"""
MnemoGraph Domain-Specific Exceptions
=====================================

This module defines a hierarchy of exceptions for consistent error handling
across the knowledge graph and memory session subsystems.

Exception Hierarchy:
    MnemoGraphError (base)
    ├── RecoverableError (transient, retry possible)
    │   ├── PredictorError
    │   │   └── PredictorTimeoutError
    │   └── BackpressureError
    └── IrrecoverableError (permanent, requires intervention)
        ├── ConfigurationError
        ├── ValidationError
        │   └── InvalidInputError
        ├── DimensionMismatchError
        └── NotFoundError
            ├── NodeNotFoundError
            ├── SessionNotFoundError
            └── ClusterNotFoundError

Usage Guidelines:
    - Predictor errors never reach callers; they trigger the documented fallback
    - Raise NotFoundError subclasses for unknown node / session / cluster ids
    - Always include context in error messages
    - error_code is a stable machine-readable identifier for logs and callers
"""

from typing import Optional, Any


class MnemoGraphError(Exception):
    """
    Base exception for all MnemoGraph errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context about the error
        recoverable: Whether the error is potentially recoverable
    """

    error_code: str = "MNEMOGRAPH_ERROR"
    recoverable: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[dict] = None,
        error_code: Optional[str] = None,
        recoverable: Optional[bool] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if error_code is not None:
            self.error_code = error_code
        if recoverable is not None:
            self.recoverable = recoverable

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Base Categories: Recoverable vs Irrecoverable
# =============================================================================

class RecoverableError(MnemoGraphError):
    """
    Base class for recoverable errors.

    These are transient errors that may succeed on retry:
    - Predictor failures and timeouts
    - Worker pool saturation
    """
    recoverable = True


class IrrecoverableError(MnemoGraphError):
    """
    Base class for irrecoverable errors.

    These are permanent errors that require intervention:
    - Invalid configuration
    - Validation failures
    - Resource not found
    """
    recoverable = False


# =============================================================================
# Predictor Errors
# =============================================================================

class PredictorError(RecoverableError):
    """Raised when a pluggable predictor is unavailable or fails."""
    error_code = "PREDICTOR_ERROR"

    def __init__(self, capability: str, reason: str, context: Optional[dict] = None):
        ctx = {"capability": capability}
        if context:
            ctx.update(context)
        super().__init__(f"Predictor '{capability}' failed: {reason}", ctx)
        self.capability = capability
        self.reason = reason


class PredictorTimeoutError(PredictorError):
    """Raised when a predictor call exceeds its timeout."""
    error_code = "PREDICTOR_TIMEOUT_ERROR"

    def __init__(self, capability: str, timeout_seconds: float, context: Optional[dict] = None):
        ctx = {"timeout_seconds": timeout_seconds}
        if context:
            ctx.update(context)
        super().__init__(capability, f"timed out after {timeout_seconds}s", ctx)
        self.timeout_seconds = timeout_seconds


class BackpressureError(RecoverableError):
    """Raised when the worker pool refuses new work because too much is pending."""
    error_code = "BACKPRESSURE_ERROR"

    def __init__(self, pending: int, limit: int, context: Optional[dict] = None):
        ctx = {"pending": pending, "limit": limit}
        if context:
            ctx.update(context)
        super().__init__(f"Worker pool saturated: {pending} pending tasks (limit {limit})", ctx)
        self.pending = pending
        self.limit = limit


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(IrrecoverableError):
    """Raised when configuration is invalid or missing."""
    error_code = "CONFIGURATION_ERROR"

    def __init__(self, config_key: str, reason: str, context: Optional[dict] = None):
        ctx = {"config_key": config_key}
        if context:
            ctx.update(context)
        super().__init__(f"Configuration error for '{config_key}': {reason}", ctx)
        self.config_key = config_key


# =============================================================================
# Vector Errors
# =============================================================================

class DimensionMismatchError(IrrecoverableError):
    """Raised when a vector that must be stored has the wrong length."""
    error_code = "DIMENSION_MISMATCH_ERROR"

    def __init__(self, expected: int, actual: int, operation: str = "operation", context: Optional[dict] = None):
        ctx = {"expected": expected, "actual": actual, "operation": operation}
        if context:
            ctx.update(context)
        super().__init__(
            f"Dimension mismatch in {operation}: expected {expected}, got {actual}",
            ctx
        )
        self.expected = expected
        self.actual = actual
        self.operation = operation


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(IrrecoverableError):
    """Raised when input validation fails."""
    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: Any = None, context: Optional[dict] = None):
        ctx = {"field": field}
        if value is not None:
            # Truncate large values
            value_str = str(value)
            if len(value_str) > 100:
                value_str = value_str[:100] + "..."
            ctx["value"] = value_str
        if context:
            ctx.update(context)
        super().__init__(f"Validation error for '{field}': {reason}", ctx)
        self.field = field
        self.reason = reason


class InvalidInputError(ValidationError):
    """Raised when an operation receives unusable input (e.g. empty content)."""
    error_code = "INVALID_INPUT_ERROR"


# =============================================================================
# Not Found Errors
# =============================================================================

class NotFoundError(IrrecoverableError):
    """Raised when a requested resource is not found."""
    error_code = "NOT_FOUND_ERROR"

    def __init__(self, resource_type: str, resource_id: str, context: Optional[dict] = None):
        ctx = {"resource_type": resource_type, "resource_id": resource_id}
        if context:
            ctx.update(context)
        super().__init__(f"{resource_type} '{resource_id}' not found", ctx)
        self.resource_type = resource_type
        self.resource_id = resource_id


class NodeNotFoundError(NotFoundError):
    """Raised when a knowledge node is not found."""
    error_code = "NODE_NOT_FOUND_ERROR"

    def __init__(self, node_id: str, context: Optional[dict] = None):
        super().__init__("KnowledgeNode", node_id, context)
        self.node_id = node_id


class SessionNotFoundError(NotFoundError):
    """Raised when a memory session is not found."""
    error_code = "SESSION_NOT_FOUND_ERROR"

    def __init__(self, session_id: str, context: Optional[dict] = None):
        super().__init__("MemorySession", session_id, context)
        self.session_id = session_id


class ClusterNotFoundError(NotFoundError):
    """Raised when a concept cluster is not found."""
    error_code = "CLUSTER_NOT_FOUND_ERROR"

    def __init__(self, cluster_id: str, context: Optional[dict] = None):
        super().__init__("ConceptCluster", cluster_id, context)
        self.cluster_id = cluster_id


# =============================================================================
# Convenience Exports
# =============================================================================

__all__ = [
    # Base
    "MnemoGraphError",
    "RecoverableError",
    "IrrecoverableError",
    # Predictors / workers
    "PredictorError",
    "PredictorTimeoutError",
    "BackpressureError",
    # Config
    "ConfigurationError",
    # Vector
    "DimensionMismatchError",
    # Validation
    "ValidationError",
    "InvalidInputError",
    # Not Found
    "NotFoundError",
    "NodeNotFoundError",
    "SessionNotFoundError",
    "ClusterNotFoundError",
]
