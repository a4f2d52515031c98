"""Error taxonomy shared by the engine components."""

from __future__ import annotations

from typing import Any


class AssistantError(Exception):
    """Base class for engine errors."""


class ConfigurationError(AssistantError):
    """A required credential or setting is missing; fatal at startup."""


class ProtocolDisconnection(AssistantError):
    """The sidecar channel closed or sent garbage before the awaited response."""


class ProtocolError(AssistantError):
    """A sidecar answered with a well-formed error response."""

    def __init__(self, payload: Any) -> None:
        self.payload = payload
        super().__init__(f"Sidecar returned an error: {payload}")


class SessionStateError(AssistantError):
    """A protocol operation was attempted in the wrong session state."""


class ToolExecutionError(AssistantError):
    """A built-in tool precondition failed (path escape, missing target, ...)."""


class RetrievalDegradation(AssistantError):
    """Embedding or ranking failed; callers fall back to raw context."""
