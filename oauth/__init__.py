"""OAuth 2.1 relay between MCP clients and the SUZURI authorization server."""
