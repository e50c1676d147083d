"""Async client for the RiotPlan HTTP MCP server."""

__version__ = "1.0.0"
