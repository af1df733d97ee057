"""github-projects-mcp: GitHub Projects v2 boards, columns and cards as MCP tools."""

__version__ = "0.1.0"
