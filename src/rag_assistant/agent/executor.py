"""Name -> text dispatch with the per-call failure policy."""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import ValidationError

from rag_assistant.agent.registry import ToolRegistry
from rag_assistant.errors import (
    ProtocolDisconnection,
    ProtocolError,
    RetrievalDegradation,
    ToolExecutionError,
)

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Executes one tool call and always answers with text.

    Failures that belong to a single call (unknown tool, invalid arguments,
    failed preconditions, sidecar error responses, degraded retrieval) come
    back as error strings so the round continues, and so does any other
    exception a handler raises. `ProtocolDisconnection` is not caught: a dead
    sidecar ends the run.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def tools(self) -> list[StructuredTool]:
        return self.registry.as_langchain_tools()

    def execute(self, name: str, arguments: Any) -> str:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return f"Error: arguments for {name} must be an object, got {type(arguments).__name__}"

        if name not in self.registry:
            logger.warning("Model requested unknown tool %s", name)
            return f"Error: unknown tool {name!r}"

        try:
            return self.registry.execute(name, arguments)
        except ValidationError as exc:
            return f"Error: invalid arguments for {name}: {_describe_validation(exc)}"
        except ToolExecutionError as exc:
            return f"Error: {exc}"
        except ProtocolError as exc:
            logger.warning("Tool %s failed remotely: %s", name, exc.payload)
            return f"Error: tool {name} failed: {exc.payload}"
        except RetrievalDegradation as exc:
            logger.warning("Tool %s could not rank results: %s", name, exc)
            return f"Error: search unavailable: {exc}"
        except ProtocolDisconnection:
            raise
        except Exception as exc:
            logger.exception("Tool %s raised unexpectedly", name)
            return f"Error: tool {name} failed: {type(exc).__name__}: {exc}"


def _describe_validation(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "arguments"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)
