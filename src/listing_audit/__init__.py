"""Listing Audit MCP Server.

Scores a local business's online listing health from 0 to 100, fetching facts
through a rate-limited, retrying, cached audit pipeline.
"""

__version__ = "0.1.0"
