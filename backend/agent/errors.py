"""
Agent error types.

Tool-level problems become structured payloads the model can read and explain;
orchestrator-level problems become exceptions caught at the turn boundary.
"""

from enum import Enum


class ErrorCode(Enum):
    """Structured error codes carried in tool error payloads."""

    # Tool call errors (contained to a single call)
    UNKNOWN_FUNCTION = "UNKNOWN_FUNCTION"
    INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    TOOL_TIMEOUT = "TOOL_TIMEOUT"

    # Conversation errors
    MODEL_ERROR = "MODEL_ERROR"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    TURN_TIMEOUT = "TURN_TIMEOUT"


def error_payload(message: str, code: ErrorCode) -> dict:
    """Build the error descriptor returned in place of a tool result."""
    return {"error": message, "code": code.value}


class AgentError(Exception):
    """Base class for orchestrator errors."""

    code = ErrorCode.MODEL_ERROR


class ModelError(AgentError):
    """The model round-trip failed (network, quota, malformed reply)."""

    code = ErrorCode.MODEL_ERROR


class EmptyResponseError(AgentError):
    """The model produced no usable text."""

    code = ErrorCode.EMPTY_RESPONSE


class CatalogMismatchError(Exception):
    """The function catalog and the handler registry are not 1:1."""

    def __init__(self, missing: set[str], orphaned: set[str]):
        self.missing = missing
        self.orphaned = orphaned
        parts = []
        if missing:
            parts.append(f"no handler for {sorted(missing)}")
        if orphaned:
            parts.append(f"handler without declaration for {sorted(orphaned)}")
        super().__init__("Function catalog mismatch: " + "; ".join(parts))
