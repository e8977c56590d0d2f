"""Audience Manager MCP Server.

A Model Context Protocol server for bulk-managing Campaign Manager 360
remarketing lists from CSV audience sheets.
"""

__version__ = "1.0.0"

from audience_manager_mcp.server import create_mcp_server

__all__ = ["create_mcp_server"]
