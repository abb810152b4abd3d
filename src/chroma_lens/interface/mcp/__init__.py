"""MCP server and tool registry."""
