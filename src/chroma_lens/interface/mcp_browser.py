"""MCP browser entrypoint.

Starts the MCP server over stdio. Logs go to stderr so they never mix
with the protocol stream.

Usage:
    python -m chroma_lens.interface.mcp_browser
    # or via the script entrypoint:
    chroma-lens-mcp
"""

from __future__ import annotations

from ..config.runtime import get_settings
from ..observability import configure_logging
from .mcp.server import create_server


def main() -> None:
    configure_logging(get_settings().log_level)
    server = create_server()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
