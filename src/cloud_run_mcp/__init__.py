"""Cloud Run MCP - deploy and inspect Cloud Run services from AI assistants."""

__version__ = "0.1.0"
