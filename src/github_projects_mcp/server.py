"""MCP server wiring for github-projects-mcp."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

try:
    from mcp.server import Server
    from mcp.types import Resource, TextContent, Tool, ToolAnnotations
except ImportError as exc:  # pragma: no cover
    raise ImportError("MCP library not installed. Install with: pip install mcp") from exc

from . import __version__
from .errors import SafeError, internal_error
from .tools import READ_ONLY_TOOLS, TOOL_METADATA, dispatch_tool, initialize_runtime_from_env

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

SERVER_NAME = "github-projects-mcp"
STATUS_URI = "github-projects-mcp://server-status"
CAPABILITIES_URI = "github-projects-mcp://capabilities"

server = Server(SERVER_NAME)


def build_tools() -> list[Tool]:
    """Build MCP Tool descriptors from the registry."""
    return [
        Tool(
            name=tool_name,
            description=metadata["description"],
            inputSchema=metadata["inputSchema"],
            annotations=ToolAnnotations(
                title=metadata["title"],
                readOnlyHint=metadata["readOnly"],
                destructiveHint=tool_name in {"delete_project_board", "remove_card_from_project"},
            ),
        )
        for tool_name, metadata in TOOL_METADATA.items()
    ]


def build_resources() -> list[Resource]:
    return [
        Resource(
            uri=STATUS_URI,
            name="Server Status",
            description="Non-secret server configuration and limits",
            mimeType="application/json",
        ),
        Resource(
            uri=CAPABILITIES_URI,
            name="Capabilities",
            description="Available tools, read-only tools and safety constraints",
            mimeType="application/json",
        ),
    ]


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    tools = build_tools()
    logger.info("Listed %s tools", len(tools))
    return tools


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Execute a tool and return MCP-compliant TextContent."""
    if not isinstance(arguments, dict):
        arguments = {}

    logger.info("Tool called: %s", name)

    try:
        raw_result = await dispatch_tool(name, arguments)
        return [TextContent(type="text", text=json.dumps(raw_result, indent=2, default=str))]
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Tool %s failed: %s", name, exc)
        error_result = internal_error("Tool execution failed")
        return [TextContent(type="text", text=json.dumps(error_result, indent=2, default=str))]


@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return build_resources()


def _capabilities() -> dict[str, Any]:
    return {
        "server": SERVER_NAME,
        "version": __version__,
        "tools": sorted(TOOL_METADATA.keys()),
        "read_only_tools": sorted(READ_ONLY_TOOLS),
        "unsupported_operations": [
            "create_project_column",
            "update_project_column",
            "delete_project_column",
            "reorder_project_columns",
        ],
        "safety": {
            "no_arbitrary_github_api_calls": True,
            "credential_like_arguments_rejected": True,
            "github_api_host_allowlist": ["https://api.github.com"],
        },
    }


def _server_status() -> dict[str, Any]:
    status: dict[str, Any] = {
        "server": SERVER_NAME,
        "version": __version__,
        "tools_available": len(TOOL_METADATA),
        "configured": False,
    }
    try:
        runtime = initialize_runtime_from_env()
    except SafeError:
        return status

    limits = runtime.config.limits
    status["configured"] = True
    status["auth_mode"] = runtime.config.auth_mode
    status["limits"] = {
        "total_timeout_s": limits.total_timeout_s,
        "max_attempts": limits.max_attempts,
        "text_max_bytes": limits.text_max_bytes,
        "max_item_pages": limits.max_item_pages,
    }
    status["policy"] = {
        "read_only": runtime.policy.read_only,
        "enabled_tools": runtime.policy.enabled_operations(),
    }
    status["audit"] = {"file_sink_enabled": runtime.config.audit_log_path is not None}
    return status


@server.read_resource()
async def read_resource(uri: Any) -> str:
    """Read resource content."""
    uri_s = uri if isinstance(uri, str) else str(uri)

    if uri_s == CAPABILITIES_URI:
        return json.dumps(_capabilities(), indent=2)
    if uri_s == STATUS_URI:
        return json.dumps(_server_status(), indent=2)
    return json.dumps({"ok": False, "code": "NotFound", "message": "Unknown resource"}, indent=2)


async def run_server() -> None:
    """Run the server over stdio."""
    # Fail fast on invalid/missing host configuration.
    try:
        _ = initialize_runtime_from_env()
    except SafeError as exc:
        logger.error("Startup configuration error: %s", exc.message)
        raise

    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def test_server() -> None:
    """Lightweight self-test: build tool/resource descriptors and the capabilities document."""
    tools = build_tools()
    resources = build_resources()
    caps = json.loads(json.dumps(_capabilities()))
    print(
        f"{SERVER_NAME} {__version__}: {len(tools)} tools, {len(resources)} resources, "
        f"{len(caps['read_only_tools'])} read-only",
        file=sys.stderr,
    )
