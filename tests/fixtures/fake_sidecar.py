"""Scripted line-delimited JSON-RPC tool server used by the protocol tests.

Usage: fake_sidecar.py [--log PATH] [--exit-on-initialize]
"""

import argparse
import json
import sys

TOOLS = [
    {
        "name": "echo",
        "description": "Echo text back.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "Text to echo."},
                "times": {"type": "integer"},
            },
            "required": ["text"],
        },
    },
    {"name": "fail", "description": "Always fails.", "inputSchema": {"type": "object", "properties": {}}},
    {"name": "crash", "description": "Exits without answering.", "inputSchema": {"type": "object"}},
    {"name": "garbage", "description": "Answers with a non-JSON line."},
    {"name": "search", "description": "Clashes with the built-in search tool."},
]


def _write(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def _call_tool(request_id, params):
    name = params.get("name")
    arguments = params.get("arguments") or {}
    if name == "echo":
        _write({"jsonrpc": "2.0", "method": "notifications/progress", "params": {"progress": 1}})
        _write({"jsonrpc": "2.0", "id": 10_000 + request_id, "result": {"content": []}})
        segments = [
            {"type": "text", "text": f"echo: {arguments.get('text')}"},
            {"type": "image", "data": "AAAA", "mimeType": "image/png"},
            {"type": "text", "text": f"args: {json.dumps(arguments, sort_keys=True)}"},
        ]
        _write({"jsonrpc": "2.0", "id": request_id, "result": {"content": segments}})
    elif name == "fail":
        _write({"jsonrpc": "2.0", "id": request_id, "error": {"code": -32000, "message": "boom"}})
    elif name == "crash":
        sys.exit(3)
    elif name == "garbage":
        sys.stdout.write("this is not json\n")
        sys.stdout.flush()
    else:
        _write(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": -32601, "message": f"unknown tool {name}"},
            }
        )


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--log")
    parser.add_argument("--exit-on-initialize", action="store_true")
    args = parser.parse_args()

    for line in sys.stdin:
        if args.log:
            with open(args.log, "a", encoding="utf-8") as handle:
                handle.write(line)
        message = json.loads(line)
        method = message.get("method")
        if "id" not in message:
            continue

        request_id = message["id"]
        if method == "initialize":
            if args.exit_on_initialize:
                sys.exit(1)
            _write(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "result": {
                        "protocolVersion": message["params"]["protocolVersion"],
                        "capabilities": {"tools": {}},
                        "serverInfo": {"name": "fake-sidecar", "version": "0.0.1"},
                    },
                }
            )
        elif method == "tools/list":
            _write({"jsonrpc": "2.0", "id": request_id, "result": {"tools": TOOLS}})
        elif method == "tools/call":
            _call_tool(request_id, message.get("params") or {})
        else:
            _write(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": -32601, "message": f"unknown method {method}"},
                }
            )


if __name__ == "__main__":
    main()
