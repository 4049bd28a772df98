"""Core server components for MSSQL MCP Server."""
