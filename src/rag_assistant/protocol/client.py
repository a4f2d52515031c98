"""Line-delimited JSON-RPC client owning one sidecar process."""

from __future__ import annotations

import itertools
import logging
import subprocess
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import IO, Any, NoReturn

from pydantic import ValidationError

from rag_assistant.errors import ProtocolDisconnection, ProtocolError, SessionStateError
from rag_assistant.protocol.messages import (
    PROTOCOL_VERSION,
    InboundMessage,
    JsonRpcNotification,
    JsonRpcRequest,
    RemoteTool,
    encode_line,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    INITIALIZED = "initialized"
    CLOSED = "closed"


@dataclass(slots=True)
class _PendingSlot:
    response: InboundMessage | None = None


class ProtocolClient:
    """Request/response session with a tool-server over its stdin/stdout.

    Every request gets the next id from a strictly increasing counter and a
    pending slot keyed by that id. Whichever caller holds the read lock reads
    lines and files responses into their slots, so pipelined callers on other
    threads pick up their own results. Lines without a matching pending id
    (notifications, server requests, stale ids) are discarded.

    EOF or an undecodable line while waiting is fatal: the session closes and
    `ProtocolDisconnection` is raised. There is no retry and no respawn.
    """

    def __init__(
        self,
        name: str = "sidecar",
        *,
        client_name: str = "rag-assistant",
        client_version: str = "1.0.0",
    ) -> None:
        self.name = name
        self.client_name = client_name
        self.client_version = client_version
        self.state = SessionState.DISCONNECTED
        self._process: subprocess.Popen[str] | None = None
        self._writer: IO[str] | None = None
        self._reader: IO[str] | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, _PendingSlot] = {}
        self._write_lock = threading.Lock()
        self._read_lock = threading.Lock()
        self._failure: str | None = None

    @classmethod
    def open(cls, command: Sequence[str], name: str = "sidecar", **kwargs: Any) -> "ProtocolClient":
        """Spawn and initialize a session; the process is released if either step fails."""

        client = cls(name, **kwargs)
        try:
            client.connect(command)
            client.initialize()
        except BaseException:
            client.close()
            raise
        return client

    def __enter__(self) -> "ProtocolClient":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def connect(self, command: Sequence[str]) -> None:
        """Spawn the sidecar. Its stderr is inherited and never fails the connect."""

        self._require(SessionState.DISCONNECTED, "connect")
        try:
            process = subprocess.Popen(
                list(command),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=None,
                text=True,
                encoding="utf-8",
                bufsize=1,
            )
        except OSError as exc:
            raise ProtocolDisconnection(f"Failed to start {self.name}: {exc}") from exc

        self._process = process
        self._writer = process.stdin
        self._reader = process.stdout
        self.state = SessionState.CONNECTED
        logger.info("Started sidecar %s (pid %s)", self.name, process.pid)

    def initialize(self) -> dict[str, Any]:
        self._require(SessionState.CONNECTED, "initialize")
        result = self._request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": self.client_name, "version": self.client_version},
            },
        )
        self._send(JsonRpcNotification(method="notifications/initialized"))
        self.state = SessionState.INITIALIZED
        logger.info("Sidecar %s initialized", self.name)
        return result if isinstance(result, dict) else {}

    def describe_tools(self) -> list[RemoteTool]:
        self._require(SessionState.INITIALIZED, "list tools")
        result = self._request("tools/list", {})
        tools = result.get("tools", []) if isinstance(result, dict) else []
        return [RemoteTool.model_validate(tool) for tool in tools]

    def list_tools(self) -> list[str]:
        return [tool.name for tool in self.describe_tools()]

    def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Invoke a remote tool and join the text segments of its content."""

        self._require(SessionState.INITIALIZED, "call tools")
        result = self._request("tools/call", {"name": name, "arguments": arguments})
        content = result.get("content", []) if isinstance(result, dict) else []
        return "\n".join(
            str(item.get("text", ""))
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        )

    def close(self) -> None:
        """Best-effort shutdown; safe to call repeatedly, never raises."""

        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        for stream in (self._writer, self._reader):
            if stream is None:
                continue
            try:
                stream.close()
            except (OSError, ValueError) as exc:
                logger.debug("Ignoring error closing %s stream: %s", self.name, exc)

        process = self._process
        if process is None:
            return
        try:
            process.terminate()
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                logger.warning("Sidecar %s did not exit after kill", self.name)
        except OSError as exc:
            logger.debug("Ignoring error stopping %s: %s", self.name, exc)
        logger.info("Sidecar %s closed", self.name)

    def _require(self, state: SessionState, action: str) -> None:
        if self.state is SessionState.CLOSED and self._failure is not None:
            raise ProtocolDisconnection(self._failure)
        if self.state is not state:
            raise SessionStateError(
                f"Cannot {action} on {self.name}: session is {self.state.value}"
            )

    def _request(self, method: str, params: dict[str, Any]) -> Any:
        request_id = next(self._ids)
        self._pending[request_id] = _PendingSlot()
        try:
            self._send(JsonRpcRequest(id=request_id, method=method, params=params))
            response = self._await(request_id)
        finally:
            self._pending.pop(request_id, None)

        if response.error is not None:
            raise ProtocolError(response.error)
        return response.result

    def _send(self, message: JsonRpcRequest | JsonRpcNotification) -> None:
        line = encode_line(message)
        with self._write_lock:
            if self._writer is None:
                raise SessionStateError(f"{self.name} is not connected")
            try:
                self._writer.write(line)
                self._writer.flush()
            except (OSError, ValueError) as exc:
                self._fail(f"write failed: {exc}", exc)
        logger.debug("-> %s %s", self.name, line.rstrip())

    def _await(self, request_id: int) -> InboundMessage:
        while True:
            with self._read_lock:
                slot = self._pending[request_id]
                if slot.response is not None:
                    return slot.response
                if self._reader is None:
                    raise SessionStateError(f"{self.name} is not connected")
                try:
                    line = self._reader.readline()
                except (OSError, ValueError) as exc:
                    self._fail(f"read failed: {exc}", exc)
                if not line:
                    self._fail("channel closed before a response arrived")
                self._dispatch(line)

    def _dispatch(self, line: str) -> None:
        logger.debug("<- %s %s", self.name, line.rstrip())
        try:
            message = InboundMessage.model_validate_json(line)
        except ValidationError as exc:
            self._fail(f"malformed line {line.strip()[:200]!r}", exc)

        if not message.is_response:
            logger.debug("Discarding %s message from %s", message.method or "unrelated", self.name)
            return
        slot = self._pending.get(message.id) if isinstance(message.id, int) else None
        if slot is None:
            logger.debug("Discarding response with unknown id %r from %s", message.id, self.name)
            return
        slot.response = message

    def _fail(self, reason: str, cause: BaseException | None = None) -> NoReturn:
        error = ProtocolDisconnection(f"{self.name}: {reason}")
        self._failure = str(error)
        self.close()
        if cause is not None:
            raise error from cause
        raise error
