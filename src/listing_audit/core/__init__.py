"""Core business logic: scoring, retry, the facts client, and data models.

This module is framework-agnostic. It has no dependency on MCP, FastMCP,
SQLAlchemy or any server framework.
"""
