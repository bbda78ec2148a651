"""Listing Audit MCP Server.

FastMCP server exposing the audit pipeline as two tools.
Run: listing-audit-mcp
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from .auditor import AuditService
from .cache import ResultCache
from .core.clients.facts_service import HttpFactExtractor
from .core.models import AuditRequest
from .core.retry import RetryOrchestrator
from .db import close_db, init_db
from .scheduler import AuditScheduler

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=False)
AUDIT = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=True)

retry = RetryOrchestrator(HttpFactExtractor())
scheduler = AuditScheduler(retry.run)
cache = ResultCache()
service = AuditService(scheduler, cache)


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Initialize the cache database, drop stale entries, start the audit scheduler."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    try:
        await init_db()
        await cache.purge_expired()
    except Exception as exc:
        logger.warning("Cache database unavailable, audits will run uncached: %s", exc)
    await scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()
        await close_db()


mcp = FastMCP(
    "Listing Audit",
    instructions="Audit a local business's online listing health. Give a business name and area (or a direct map listing URL) and get a 0-100 score with a breakdown of what helps and what hurts.",
    lifespan=lifespan,
)


@mcp.tool(annotations=AUDIT)
async def audit_business(business_name: str = "", area: str = "", place_url: str = "") -> dict:
    """Audit a business listing and score it from 0 to 100.

    Audits are rate limited and may take a minute or more. Results for the
    same name and area are cached for 24 hours.

    Args:
        business_name: Business name as it appears on the map listing.
        area: Neighbourhood or city, e.g. 'Salt Lake, Kolkata'.
        place_url: Direct listing URL. Used instead of a name/area search when given.
    """
    request = AuditRequest(
        subject_name=business_name,
        area=area,
        resource_ref=place_url.strip() or None,
    )
    return await service.run_audit(request)


@mcp.tool(annotations=READ_ONLY)
async def audit_queue_status() -> dict:
    """Current state of the audit queue: waiting audits, whether one is running, and totals."""
    stats = service.queue_status()
    return {
        "success": True,
        "queue": stats,
        "summary": f"{stats['queue_depth']} waiting, {'1 running' if stats['in_flight'] else 'none running'}; "
        f"{stats['total_processed']} processed, {stats['total_failed']} failed.",
    }


def main():
    """Entry point for the CLI command."""
    mcp.run()


if __name__ == "__main__":
    main()
