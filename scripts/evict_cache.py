"""
Delete semantic cache entries that have not been used recently.

Usage: python scripts/evict_cache.py [days]

`days` defaults to CACHE_STALE_DAYS (30).
"""

import asyncio
import sys

from dotenv import load_dotenv
load_dotenv()

from kb_assistant.api.dependencies import get_semantic_cache
from kb_assistant.config import settings
from kb_assistant.core.logging import configure_logging
from kb_assistant.db import async_engine


async def main(days: int) -> None:
    configure_logging(settings.log_level, json_output=settings.log_json)
    removed = await get_semantic_cache().evict_older_than(days)
    await async_engine.dispose()
    print(f"Evicted {removed} cache entries unused for {days} days.")


if __name__ == "__main__":
    days = int(sys.argv[1]) if len(sys.argv) > 1 else settings.cache_stale_days
    asyncio.run(main(days))
