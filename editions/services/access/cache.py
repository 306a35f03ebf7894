"""
EntitlementCache — Redis read cache over a user's active edition access.

The cache holds the whole per-user list (JSON) with a 24h TTL. After a release the engine
writes freshly computed lists straight in (write-through) in fixed-size batches with a
bounded thread pool, instead of deleting keys and letting thousands of readers recompute.
The store stays the source of truth: Redis errors degrade to store reads and are logged.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import redis
from pydantic import ValidationError
from sqlalchemy.orm import Session

from editions.core.config import settings
from editions.schemas.access import AccessView, access_list_adapter
from editions.services.access.service import EditionAccessService
from editions.utils.metrics import access_cache_writes_total

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "editionAccess:"


def chunked(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class EntitlementCache:
    def __init__(
        self,
        client: redis.Redis | None = None,
        ttl_seconds: int | None = None,
        batch_size: int | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.ttl = ttl_seconds or settings.access_cache_ttl
        self.batch_size = batch_size or settings.access_cache_batch_size
        self.concurrency = concurrency or settings.access_cache_concurrency

    def _key(self, user_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}{user_id}"

    def get_cached(self, user_id: str) -> list[AccessView] | None:
        """Cached list or None on miss / unreadable entry / Redis error."""
        try:
            raw = self.client.get(self._key(user_id))
        except redis.RedisError as e:
            logger.warning("access_cache_get_failed", extra={"user_id": user_id, "error": str(e)})
            return None
        if not raw:
            return None
        try:
            return access_list_adapter.validate_json(raw)
        except ValidationError:
            logger.warning("access_cache_corrupt_entry", extra={"user_id": user_id})
            return None

    def get_user_access(self, user_id: str, db: Session) -> list[AccessView]:
        """Cached-or-fresh access list. On a miss compute from the store and write through."""
        cached = self.get_cached(user_id)
        if cached is not None:
            return cached
        fresh = EditionAccessService(db).list_user_access(user_id)
        self.write_user_access(user_id, fresh)
        return fresh

    def write_user_access(self, user_id: str, items: list[AccessView]) -> bool:
        try:
            self.client.setex(self._key(user_id), self.ttl, access_list_adapter.dump_json(items))
        except redis.RedisError as e:
            access_cache_writes_total.labels(status="error").inc()
            logger.warning("access_cache_write_failed", extra={"user_id": user_id, "error": str(e)})
            return False
        access_cache_writes_total.labels(status="success").inc()
        return True

    def refresh_users(self, user_lists: dict[str, list[AccessView]]) -> int:
        """
        Push precomputed lists for many users. Batches of batch_size, each written by at most
        `concurrency` threads. One user's failure never stops the others. Returns users written.
        """
        user_ids = list(user_lists)
        if not user_ids:
            return 0
        batches = chunked(user_ids, self.batch_size)
        written = 0
        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            for index, batch in enumerate(batches, start=1):
                results = pool.map(self._safe_write(user_lists), batch)
                batch_written = sum(1 for ok in results if ok)
                written += batch_written
                logger.info(
                    "access_cache_batch_refreshed",
                    extra={
                        "batch_index": index,
                        "batch_count": len(batches),
                        "batch_size": len(batch),
                        "status": f"{batch_written}/{len(batch)}",
                    },
                )
        return written

    def _safe_write(self, user_lists: dict[str, list[AccessView]]) -> Callable[[str], bool]:
        def write(user_id: str) -> bool:
            try:
                return self.write_user_access(user_id, user_lists[user_id])
            except Exception as e:
                access_cache_writes_total.labels(status="error").inc()
                logger.exception("access_cache_refresh_user_failed", extra={"user_id": user_id, "error": str(e)})
                return False

        return write

    def invalidate(self, user_ids: list[str]) -> int:
        """Drop cached lists; next read recomputes. Used by expiry sweeps, not by releases."""
        if not user_ids:
            return 0
        deleted = 0
        for batch in chunked(user_ids, self.batch_size):
            try:
                deleted += self.client.delete(*[self._key(user_id) for user_id in batch])
            except redis.RedisError as e:
                logger.warning("access_cache_invalidate_failed", extra={"error": str(e), "batch_size": len(batch)})
        return deleted
