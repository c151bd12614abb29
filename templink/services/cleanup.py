import asyncio
import logging
from typing import Callable

from .. import crud
from ..database import Database
from ..utils import now_ms

logger = logging.getLogger(__name__)


async def deactivate_expired_links(database: Database, clock: Callable[[], int] = now_ms) -> int:
    async with database.session() as db:
        count = await crud.deactivate_expired_links(db, clock())
    if count > 0:
        logger.info(f"Deactivated {count} expired links.")
    return count


async def run_janitor(database: Database, interval: int, clock: Callable[[], int] = now_ms) -> None:
    """Background sweep. Redemption re-checks expiry itself, so this is housekeeping only."""
    while True:
        try:
            logger.info("Running background cleanup job...")
            await deactivate_expired_links(database, clock)
        except Exception as e:
            logger.error(f"Error in cleanup job: {e}")
        await asyncio.sleep(interval)
