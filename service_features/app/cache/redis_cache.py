"""
Redis read-through cache for stored feature policies.
"""

import json
from datetime import datetime, timezone
from typing import Dict, Optional

import redis.asyncio as redis
from shared.logging import get_logger
from shared.errors import AccessLayerException
from ..context.collaborators import PolicyRepository
from ..rules.models import PolicyRecord


class CachedPolicyRepository:
    """Wraps a policy repository with a Redis-backed snapshot.

    Cache faults never fail a load: they are logged and the wrapped
    repository is asked instead. Faults of the wrapped repository propagate
    unchanged.
    """

    POLICIES_KEY = "features:policies"

    def __init__(
        self,
        repository: PolicyRepository,
        redis_url: str,
        ttl_seconds: int = 3600,
        client: Optional[redis.Redis] = None
    ):
        self.repository = repository
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("features.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Start the Redis cache."""
        try:
            if self.redis is None:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30
                )

            await self.redis.ping()

            self.logger.info("Redis policy cache started")

        except Exception as e:
            self.logger.error("Failed to start Redis policy cache", error=str(e))
            raise AccessLayerException("REDIS_START_FAILED", str(e))

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis policy cache stopped")

    async def load_policies(self) -> Dict[str, PolicyRecord]:
        """Cached snapshot if present, otherwise load and cache."""
        cached = await self._get_cached()
        if cached is not None:
            return cached

        policies = await self.repository.load_policies()
        await self._set_cached(policies)
        return policies

    async def invalidate(self) -> bool:
        """Drop the cached snapshot."""
        if self.redis is None:
            return False
        try:
            await self.redis.delete(self.POLICIES_KEY)
            self.logger.info("Policy cache invalidated")
            return True
        except Exception as e:
            self.logger.warning("Error invalidating policy cache", error=str(e))
            return False

    async def _get_cached(self) -> Optional[Dict[str, PolicyRecord]]:
        if self.redis is None:
            return None

        try:
            cached_data = await self.redis.get(self.POLICIES_KEY)
            if not cached_data:
                return None

            data = json.loads(cached_data)
            policies = {
                feature_key: PolicyRecord.model_validate(record)
                for feature_key, record in data["policies"].items()
            }

            self.logger.debug("Policy cache hit", count=len(policies))
            return policies

        except Exception as e:
            self.logger.warning("Error reading policy cache", error=str(e))
            return None

    async def _set_cached(self, policies: Dict[str, PolicyRecord]) -> bool:
        if self.redis is None:
            return False

        try:
            # exclude_unset keeps "field not stored" distinct from "stored as null"
            data = {
                "policies": {
                    feature_key: record.model_dump(mode="json", exclude_unset=True)
                    for feature_key, record in policies.items()
                },
                "cached_at": datetime.now(timezone.utc).isoformat()
            }

            await self.redis.setex(self.POLICIES_KEY, self.ttl_seconds, json.dumps(data))

            self.logger.debug("Cached feature policies", count=len(policies), ttl=self.ttl_seconds)
            return True

        except Exception as e:
            self.logger.warning("Error caching feature policies", error=str(e))
            return False
