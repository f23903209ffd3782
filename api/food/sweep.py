"""Listing expiry sweep endpoint (can be called via Vercel cron)."""

import json
import asyncio
from src.services.lifecycle import build_engine
from src.utils.logging import correlation_context, get_structured_logger
from src.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)


async def run_sweep() -> int:
    engine = build_engine()
    return await engine.sweep_expired()


def handler(request):
    """
    Expire available listings whose expiry has passed.

    Can be called manually or via Vercel cron job. Reads also sweep, so this
    only keeps the table tidy between requests.
    """
    LoggingConfig.ensure_configured()
    headers = (request or {}).get("headers", {}) or {}
    correlation_id = headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER) or headers.get(
        LoggingConfig.LOG_CORRELATION_ID_HEADER.lower()
    )

    with correlation_context(correlation_id):
        try:
            expired = asyncio.run(run_sweep())

            return {
                "statusCode": 200,
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps({
                    "ok": True,
                    "expired": expired,
                })
            }

        except Exception as e:
            logger.error("Error sweeping expired listings", exc_info=True, error=str(e))
            return {
                "statusCode": 500,
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps({"ok": False, "error": str(e)})
            }
