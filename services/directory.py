"""
services/directory.py  –  Driver and merchant lists

Both lists are read from the hosted database, normalized, and kept in
redis for DIRECTORY_CACHE_TTL seconds. Without redis every call reads
through.
"""

import logging
from typing import List, Optional

from config import settings
from schemas import Driver, Merchant
from services.normalize import normalize_driver, normalize_merchant
from utils.cache import cache

logger = logging.getLogger(__name__)

DRIVERS_KEY = "directory:drivers"
MERCHANTS_KEY = "directory:merchants"


def _matches(entry, term: str) -> bool:
    term = term.strip().casefold()
    if not term:
        return True
    return (
        term in entry.name.casefold()
        or term in entry.id.casefold()
        or term in entry.phone.casefold()
    )


def search(entries: list, term: Optional[str]) -> list:
    if not term:
        return list(entries)
    return [e for e in entries if _matches(e, term)]


class DirectoryService:
    def __init__(self, source=None, cache_backend=None):
        if source is None:
            from services.supabase_client import supabase
            source = supabase
        self.source = source
        self.cache = cache_backend or cache

    async def drivers(self, term: Optional[str] = None) -> List[Driver]:
        cached = self.cache.get(DRIVERS_KEY)
        if cached is not None:
            entries = [Driver(**row) for row in cached]
        else:
            entries = [normalize_driver(row) for row in await self.source.list_agents()]
            entries = [d for d in entries if d.fleet_id is not None]
            self.cache.set(DRIVERS_KEY, [d.model_dump() for d in entries], ttl=settings.DIRECTORY_CACHE_TTL)
            logger.info(f"👥 Loaded {len(entries)} drivers")
        return search(entries, term)

    async def merchants(self, term: Optional[str] = None) -> List[Merchant]:
        cached = self.cache.get(MERCHANTS_KEY)
        if cached is not None:
            entries = [Merchant(**row) for row in cached]
        else:
            entries = [normalize_merchant(row) for row in await self.source.list_customers()]
            entries = [m for m in entries if m.vendor_id is not None]
            self.cache.set(MERCHANTS_KEY, [m.model_dump() for m in entries], ttl=settings.DIRECTORY_CACHE_TTL)
            logger.info(f"🏪 Loaded {len(entries)} merchants")
        return search(entries, term)

    def invalidate(self) -> int:
        return self.cache.delete_pattern("directory:*")
