"""Name-keyed tool catalog with Pydantic argument validation."""

from __future__ import annotations

from collections.abc import Callable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, ConfigDict

from rag_assistant.types import ToolTrace

BUILTIN = "builtin"


class ToolArgs(BaseModel):
    """Base for tool argument models: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")


class ToolSpec(BaseModel):
    """One callable tool: its declaration plus the handler behind it.

    `origin` is `builtin` for local tools and the sidecar name for proxied
    ones.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], str]
    origin: str = BUILTIN

    def invoke(self, payload: dict[str, Any]) -> str:
        return self.handler(self.args_schema.model_validate(payload))


class ToolRegistry:
    """Tools in registration order, which is also the order offered to the model.

    The optional observer receives a `ToolTrace` for every invocation,
    including ones whose validation or handler raised.
    """

    def __init__(self, preview_chars: int = 320) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None
        self.preview_chars = preview_chars

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return spec

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        self._observer = observer

    def execute(self, name: str, payload: dict[str, Any]) -> str:
        return self._invoke(self.get(name), payload)

    def as_langchain_tools(self) -> list[StructuredTool]:
        return [
            StructuredTool.from_function(
                name=spec.name,
                description=spec.description,
                args_schema=spec.args_schema,
                func=self._bind(spec),
            )
            for spec in self._tools.values()
        ]

    def catalog(self) -> list[dict[str, Any]]:
        """Declarations as `{name, description, parameters}`, plus each tool's origin."""

        declarations = []
        for spec, tool in zip(self._tools.values(), self.as_langchain_tools(), strict=True):
            declaration = convert_to_openai_tool(tool)["function"]
            declaration["origin"] = spec.origin
            declarations.append(declaration)
        return declarations

    def _bind(self, spec: ToolSpec) -> Callable[..., str]:
        def _call(**kwargs: Any) -> str:
            return self._invoke(spec, kwargs)

        return _call

    def _invoke(self, spec: ToolSpec, payload: dict[str, Any]) -> str:
        start = perf_counter()
        try:
            output = spec.invoke(payload)
        except Exception as exc:
            self._notify(spec, payload, f"{type(exc).__name__}: {exc}", start, failed=True)
            raise
        self._notify(spec, payload, output, start, failed=False)
        return output

    def _notify(
        self,
        spec: ToolSpec,
        payload: dict[str, Any],
        output: str,
        start: float,
        *,
        failed: bool,
    ) -> None:
        if self._observer is None:
            return
        self._observer(
            ToolTrace(
                name=spec.name,
                input_payload=payload,
                output_preview=output[: self.preview_chars],
                latency_ms=(perf_counter() - start) * 1000.0,
                failed=failed,
            )
        )
