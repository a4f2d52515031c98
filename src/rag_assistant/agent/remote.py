"""Registers sidecar tools in the local registry as pass-through specs."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, create_model

from rag_assistant.agent.registry import ToolRegistry, ToolSpec
from rag_assistant.protocol.client import ProtocolClient
from rag_assistant.protocol.messages import RemoteTool

logger = logging.getLogger(__name__)

_JSON_TYPES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": int | float,
    "boolean": bool,
}


def args_model_from_schema(tool_name: str, schema: dict[str, Any]) -> type[BaseModel]:
    """Build a strict argument model from a flat JSON object schema.

    Required properties become required fields; optional ones default to None
    and are dropped before forwarding. Unknown fields are rejected.
    """

    properties: dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or [])
    fields: dict[str, Any] = {}
    for prop_name, prop_schema in properties.items():
        annotation = _annotation_for(prop_schema)
        description = prop_schema.get("description")
        if prop_name in required:
            fields[prop_name] = (annotation, Field(description=description))
        else:
            fields[prop_name] = (annotation | None, Field(default=None, description=description))

    model_name = "".join(part.title() for part in tool_name.replace("-", "_").split("_")) + "Args"
    return create_model(
        model_name,
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def _annotation_for(prop_schema: dict[str, Any]) -> Any:
    json_type = prop_schema.get("type")
    if json_type == "array":
        item_type = (prop_schema.get("items") or {}).get("type", "string")
        return list[_JSON_TYPES.get(item_type, Any)]
    if json_type == "object":
        return dict[str, Any]
    return _JSON_TYPES.get(json_type, Any)


def remote_tool_spec(client: ProtocolClient, tool: RemoteTool) -> ToolSpec:
    def _forward(data: BaseModel) -> str:
        return client.call_tool(tool.name, data.model_dump(exclude_none=True))

    return ToolSpec(
        name=tool.name,
        description=tool.description or f"{tool.name} (via {client.name})",
        args_schema=args_model_from_schema(tool.name, tool.input_schema),
        handler=_forward,
        origin=client.name,
    )


def register_remote_tools(registry: ToolRegistry, client: ProtocolClient) -> list[str]:
    """Register every tool the session advertises; returns the registered names."""

    registered: list[str] = []
    for tool in client.describe_tools():
        if tool.name in registry:
            logger.warning(
                "Skipping remote tool %s from %s: name already registered", tool.name, client.name
            )
            continue
        registry.register(remote_tool_spec(client, tool))
        registered.append(tool.name)
    logger.info("Registered %d tool(s) from %s: %s", len(registered), client.name, ", ".join(registered))
    return registered
