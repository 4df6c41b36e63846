"""Redis-backed persistence for the promotion catalog."""

from __future__ import annotations

import logging
from uuid import uuid4

import redis.asyncio as redis

from src.config import settings
from src.models.promotion import Promotion, PromotionPayload

logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Return a singleton Redis client for the current process."""

    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class PromotionCatalogStore:
    """Promotions stored as JSON documents in a single Redis hash keyed by id."""

    def __init__(self, client: redis.Redis, key: str | None = None):
        self._client = client
        self._key = key or settings.PROMOTION_CATALOG_KEY

    async def create(self, payload: PromotionPayload) -> Promotion:
        promotion = Promotion(id=str(uuid4()), **payload.model_dump())
        await self.save(promotion)
        logger.info("Stored promotion %s (%s)", promotion.id, promotion.name)
        return promotion

    async def save(self, promotion: Promotion) -> None:
        await self._client.hset(self._key, promotion.id, promotion.model_dump_json())

    async def fetch(self, promotion_id: str) -> Promotion | None:
        raw = await self._client.hget(self._key, promotion_id)
        if not raw:
            return None
        return Promotion.model_validate_json(raw)

    async def list_all(self) -> list[Promotion]:
        """All stored promotions; undecodable entries are logged and left out."""

        raw_entries = await self._client.hgetall(self._key)
        promotions: list[Promotion] = []
        for promotion_id, raw in raw_entries.items():
            try:
                promotions.append(Promotion.model_validate_json(raw))
            except ValueError:
                logger.warning("Ignoring malformed promotion %s in catalog", promotion_id)
        promotions.sort(key=lambda promotion: promotion.id)
        return promotions

    async def delete(self, promotion_id: str) -> bool:
        removed = await self._client.hdel(self._key, promotion_id)
        if removed:
            logger.info("Deleted promotion %s", promotion_id)
        return bool(removed)


def get_catalog_store() -> PromotionCatalogStore:
    """FastAPI dependency factory."""

    return PromotionCatalogStore(get_redis_client())
