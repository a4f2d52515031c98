"""JSON-RPC 2.0 message models exchanged with sidecars, one JSON object per line."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"


class JsonRpcRequest(BaseModel):
    jsonrpc: str = JSONRPC_VERSION
    id: int
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class JsonRpcNotification(BaseModel):
    jsonrpc: str = JSONRPC_VERSION
    method: str
    params: dict[str, Any] | None = None


class InboundMessage(BaseModel):
    """Anything a sidecar may write: response, notification or server request."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: str | None = None
    id: int | str | None = None
    method: str | None = None
    result: Any = None
    error: Any = None

    @property
    def is_response(self) -> bool:
        return self.method is None and self.id is not None


class RemoteTool(BaseModel):
    """A tool advertised by a sidecar's `tools/list`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )


def encode_line(message: BaseModel) -> str:
    return message.model_dump_json(exclude_none=True) + "\n"
