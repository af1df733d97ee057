#!/usr/bin/env python3
"""Command line for the GitHub Projects v2 MCP server.

  github-projects-mcp                  serve over stdio
  github-projects-mcp --read-only      serve with every write tool disabled
  github-projects-mcp --list-tools     print the tool catalogue and exit
  github-projects-mcp --check          build descriptors, print a summary and exit
"""

import argparse
import asyncio
import os
import sys

from github_projects_mcp import __version__
from github_projects_mcp.server import run_server, test_server
from github_projects_mcp.tools import READ_ONLY_TOOLS, TOOL_METADATA

_ENV_HELP = """\
environment:
  GITHUB_PERSONAL_ACCESS_TOKEN         token with the 'project' scope
  GITHUB_APP_ID, GITHUB_APP_INSTALLATION_ID, GITHUB_APP_PRIVATE_KEY_PATH
                                       GitHub App installation (organization boards)
  GITHUB_PROJECTS_MCP_READ_ONLY        'true' disables every write tool
  GITHUB_PROJECTS_MCP_DISABLED_TOOLS   comma-separated tool names to disable
  GITHUB_PROJECTS_MCP_AUDIT_LOG_PATH   absolute path of the JSONL audit file
"""


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="github-projects-mcp",
        description="Expose GitHub Projects v2 boards, columns and cards as MCP tools over stdio.",
        epilog=_ENV_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Refuse every write tool, overriding GITHUB_PROJECTS_MCP_READ_ONLY.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--list-tools", action="store_true", help="Print each tool with its access mode and exit.")
    mode.add_argument(
        "--check",
        "--test",
        dest="check",
        action="store_true",
        help="Build tool and resource descriptors without contacting GitHub, then exit.",
    )
    return parser.parse_args(argv)


def print_tool_catalogue() -> None:
    """One line per tool: access mode, then name."""
    for name in sorted(TOOL_METADATA):
        access = "read" if name in READ_ONLY_TOOLS else "write"
        print(f"{access:<5}  {name}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.list_tools:
        print_tool_catalogue()
        return
    if args.read_only:
        # Read when the runtime is first built.
        os.environ["GITHUB_PROJECTS_MCP_READ_ONLY"] = "true"
    try:
        asyncio.run(test_server() if args.check else run_server())
    except KeyboardInterrupt:
        print("\ngithub-projects-mcp: interrupted", file=sys.stderr)


if __name__ == "__main__":
    main()
