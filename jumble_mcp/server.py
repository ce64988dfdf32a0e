"""Jumble MCP server: JSON-RPC request router and stdio loop.

PROTOCOL:
- One JSON-RPC 2.0 request per input line, one response per output line
- Methods: initialize, initialized, notifications/initialized, ping,
  tools/list, tools/call
- Tool failures are successful responses with `isError: true`; only
  protocol failures produce JSON-RPC error objects

The server owns the current WorkspaceIndex and swaps it wholesale on
reload. Memory stores are cached per project directory for the lifetime
of the process, so a reload never reopens (or forgets) a store.
"""

from __future__ import annotations

import io
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, TextIO

from mcp.types import (
    CallToolResult,
    ErrorData,
    Implementation,
    InitializeResult,
    ListToolsResult,
    ServerCapabilities,
    TextContent,
    ToolsCapability,
)

from jumble_mcp import __version__
from jumble_mcp.config import Settings
from jumble_mcp.errors import ProtocolError, ToolError, ValidationError
from jumble_mcp.memory import MemoryStore
from jumble_mcp.tools import TOOLS, tools_list
from jumble_mcp.workspace import WorkspaceIndex, build_workspace_index, open_project_memory

log = logging.getLogger("jumble_mcp.server")

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "jumble"
JSONRPC_VERSION = "2.0"


def setup_logging(debug: bool = False) -> None:
    """Log to stderr; stdout carries the protocol."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _dump(model) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def tool_result(text: str, is_error: bool = False) -> dict[str, Any]:
    """Wrap tool output in the MCP content envelope."""
    result = _dump(CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error))
    if not is_error:
        result.pop("isError", None)
    return result


def success_response(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    response: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
    if request_id is not None:
        response["id"] = request_id
    response["result"] = result
    return response


def error_response(request_id: Any, error: ProtocolError) -> dict[str, Any]:
    response: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
    if request_id is not None:
        response["id"] = request_id
    response["error"] = _dump(ErrorData(code=error.code, message=error.message, data=error.data))
    return response


class JumbleServer:
    """Routes JSON-RPC requests against the current workspace index."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._memory_stores: dict[Path, MemoryStore] = {}
        self._methods: dict[str, Callable[[Any], dict[str, Any]]] = {
            "initialize": self._initialize,
            "initialized": self._empty,
            "notifications/initialized": self._empty,
            "ping": self._empty,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
        }
        self.index: WorkspaceIndex = build_workspace_index(settings, self.open_memory)

    # =========================================================================
    # STATE
    # =========================================================================

    def open_memory(self, project_root: Path, name: str) -> MemoryStore:
        """Return the cached store for `project_root`, opening it on first use."""
        key = Path(project_root).resolve()
        store = self._memory_stores.get(key)
        if store is None:
            store = open_project_memory(project_root, name)
            self._memory_stores[key] = store
        return store

    def reload(self) -> WorkspaceIndex:
        """Rebuild the index from disk and swap it in."""
        log.info(f"Reloading workspace from {self.settings.root}")
        self.index = build_workspace_index(self.settings, self.open_memory)
        return self.index

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def handle_line(self, line: str) -> dict[str, Any]:
        """Decode one input line and handle it."""
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            log.warning(f"Unparseable request line: {e}")
            return error_response(None, ProtocolError.parse_error(str(e)))
        return self.handle_request(message)

    def handle_request(self, message: Any) -> dict[str, Any]:
        """Handle one decoded JSON-RPC request and build its response."""
        if not isinstance(message, dict):
            return error_response(None, ProtocolError.invalid_request("expected a JSON object"))

        request_id = message.get("id")
        method = message.get("method")
        if not isinstance(method, str):
            return error_response(request_id, ProtocolError.invalid_request("missing 'method'"))

        handler = self._methods.get(method)
        if handler is None:
            log.debug(f"Unknown method: {method}")
            return error_response(request_id, ProtocolError.method_not_found(method))

        params = message.get("params")
        try:
            result = handler({} if params is None else params)
        except ProtocolError as e:
            return error_response(request_id, e)
        except Exception as e:
            log.exception(f"Unhandled error in '{method}'")
            return error_response(request_id, ProtocolError.internal_error(str(e)))
        return success_response(request_id, result)

    # =========================================================================
    # METHODS
    # =========================================================================

    def _empty(self, params: Any) -> dict[str, Any]:
        return {}

    def _initialize(self, params: Any) -> dict[str, Any]:
        client = params.get("clientInfo") if isinstance(params, dict) else None
        if isinstance(client, dict):
            log.info(f"Client connected: {client.get('name', 'unknown')} {client.get('version', '')}".rstrip())
        result = InitializeResult(
            protocolVersion=PROTOCOL_VERSION,
            capabilities=ServerCapabilities(tools=ToolsCapability()),
            serverInfo=Implementation(name=SERVER_NAME, version=__version__),
        )
        return _dump(result)

    def _tools_list(self, params: Any) -> dict[str, Any]:
        return _dump(ListToolsResult(tools=tools_list()))

    def _tools_call(self, params: Any) -> dict[str, Any]:
        if not isinstance(params, dict):
            raise ProtocolError.invalid_params("'params' must be an object")

        name = params.get("name")
        if not isinstance(name, str):
            raise ProtocolError.invalid_params("Missing 'name' parameter")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ProtocolError.invalid_params("'arguments' must be an object")

        log.debug(f"tools/call {name}")
        try:
            registered = TOOLS.get(name)
            if registered is None:
                raise ValidationError(f"Unknown tool: {name}")
            text = registered.call(self, arguments)
        except ToolError as e:
            log.debug(f"Tool '{name}' failed: {e}")
            return tool_result(f"Error: {e}", is_error=True)
        return tool_result(text)


def run_stdio(server: JumbleServer, stdin: TextIO, stdout: TextIO) -> None:
    """Serve requests from `stdin` until EOF, one response line per request."""
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        response = server.handle_line(line)
        stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
        stdout.flush()


def utf8_stdio(stdin: TextIO, stdout: TextIO) -> tuple[TextIO, TextIO]:
    """Rewrap text streams as UTF-8 regardless of the console locale.

    Undecodable input bytes are replaced rather than raised.
    """
    return (
        io.TextIOWrapper(stdin.buffer, encoding="utf-8", errors="replace"),
        io.TextIOWrapper(stdout.buffer, encoding="utf-8"),
    )


def main(root: str | Path | None = None) -> None:
    """Run the MCP server on stdio."""
    setup_logging(bool(os.environ.get("JUMBLE_DEBUG")))
    settings = Settings.from_env(root)
    try:
        log.info(f"Starting Jumble MCP server {__version__} (root: {settings.root})")
        server = JumbleServer(settings)
        stdin, stdout = utf8_stdio(sys.stdin, sys.stdout)
        run_stdio(server, stdin, stdout)
    except KeyboardInterrupt:
        log.info("Interrupted")
    finally:
        log.info("Server shutting down")


if __name__ == "__main__":
    main()
