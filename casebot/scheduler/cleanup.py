import asyncio
import logging

logger = logging.getLogger(__name__)


async def run_cleanup_loop(registry, ttl_seconds, interval_seconds):
    """Periodically drop pending cases nobody finished within the TTL."""
    logger.info("[cleanup] sweeping every %ss, ttl %ss", interval_seconds, ttl_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            registry.sweep_expired(ttl_seconds)
        except Exception:
            logger.exception("[cleanup] sweep failed")
