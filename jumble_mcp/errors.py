"""Error taxonomy for Jumble MCP.

Two families:
- Tool-level errors (ToolError subclasses) are reported to the client as
  successful `tools/call` responses carrying `isError: true`.
- Protocol-level errors (ProtocolError) become native JSON-RPC error objects.

ManifestError never leaves the discovery layer; the offending project is
skipped and logged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR


class JumbleError(Exception):
    """Base class for all Jumble errors."""


class ManifestError(JumbleError):
    """Raised when a project manifest cannot be read or parsed."""

    def __init__(self, path: Any, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid manifest {path}: {reason}")


class ToolError(JumbleError):
    """Base class for errors surfaced as tool results."""


class NotFoundError(ToolError):
    """Unknown project, concept, doc, skill, command or memory key.

    Attributes:
        kind: What was looked up ("Project", "Concept", "Memory", ...)
        name: The requested name
        available: Alternatives to list in the message (None = don't list)
    """

    def __init__(self, kind: str, name: str, available: list[str] | None = None, hint: str | None = None):
        self.kind = kind
        self.name = name
        self.available = available
        message = f"{kind} '{name}' not found"
        if available is not None:
            message += f". Available: {', '.join(available) if available else '(none)'}"
        if hint:
            message += f". {hint}"
        super().__init__(message)


class ValidationError(ToolError):
    """Missing/ill-typed argument, unknown enum value or missing confirmation."""


class PersistenceError(ToolError):
    """Memory store read/write/save failure."""


@dataclass
class ProtocolError(JumbleError):
    """JSON-RPC protocol failure, rendered as a native error object."""

    code: int
    message: str
    data: dict[str, Any] | None = field(default=None)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @classmethod
    def parse_error(cls, detail: str) -> "ProtocolError":
        return cls(PARSE_ERROR, f"Parse error: {detail}")

    @classmethod
    def invalid_request(cls, detail: str) -> "ProtocolError":
        return cls(INVALID_REQUEST, f"Invalid request: {detail}")

    @classmethod
    def method_not_found(cls, method: str) -> "ProtocolError":
        return cls(METHOD_NOT_FOUND, f"Method not found: {method}")

    @classmethod
    def invalid_params(cls, detail: str) -> "ProtocolError":
        return cls(INVALID_PARAMS, detail)

    @classmethod
    def internal_error(cls, detail: str) -> "ProtocolError":
        return cls(INTERNAL_ERROR, f"Internal error: {detail}")
