#!/usr/bin/env python3
"""
Scheduled Token Refresh

Refreshes the Search Console access token of every connected user so that
interactive requests rarely pay for a token exchange. Users whose refresh
token is rejected are marked disconnected.

Run hourly (access tokens live for one hour).
"""

import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import structlog

from gsc_gateway.api.dependencies import build_token_manager
from gsc_gateway.config import settings
from gsc_gateway.db.session import close_engines, get_session
from gsc_gateway.kv.store import close_kv_store, get_kv_store
from gsc_gateway.observability import setup_logging

logger = structlog.get_logger()


async def main() -> int:
    setup_logging()
    kv = get_kv_store()
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(settings.oauth_timeout_seconds)
        ) as http_client, get_session() as session:
            manager = build_token_manager(session, kv, http_client)
            summary = await manager.refresh_all_connected()
    finally:
        await close_kv_store()
        await close_engines()

    logger.info("token_refresh_job_done", refreshed=summary.refreshed, failed=summary.failed)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
