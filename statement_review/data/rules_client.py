"""
Rules client for reading shared rule settings from Redis.

Lets every reviewer in the back office use the same thresholds and
contract sizes without redeploying configuration.
"""

import json
import logging
from datetime import datetime
from typing import Dict, Optional

import redis
from pydantic import ValidationError

from ..config import ReviewSettings, RulesConfig

logger = logging.getLogger(__name__)

RULES_CONFIG_KEY = "review:rules:config"
CONTRACT_SIZES_KEY = "review:rules:contract_sizes"


class RulesClient:
    """
    Client for reading rule settings from Redis.

    Values are cached for a short TTL. On Redis errors the last cached
    value (or None) is returned and callers fall back to local settings.
    """

    def __init__(self, settings: ReviewSettings, cache_ttl_seconds: int = 60):
        self.settings = settings
        self._redis: Optional[redis.Redis] = None
        self._cache: Dict[str, Dict] = {}
        self._cache_times: Dict[str, datetime] = {}
        self._cache_ttl_seconds = cache_ttl_seconds

    def connect(self) -> bool:
        """Connect to Redis."""
        try:
            self._redis = redis.Redis(
                host=self.settings.redis_host,
                port=self.settings.redis_port,
                db=self.settings.redis_db,
                password=self.settings.redis_password or None,
                decode_responses=True,
            )
            self._redis.ping()
            logger.info(
                f"Rules client connected to Redis at "
                f"{self.settings.redis_host}:{self.settings.redis_port}"
            )
            return True
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis for rules: {e}")
            self._redis = None
            return False

    def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            self._redis.close()
            self._redis = None

    def _get_json(self, key: str, force_refresh: bool = False) -> Optional[Dict]:
        if not self._redis:
            return self._cache.get(key)

        now = datetime.now()
        cached_at = self._cache_times.get(key)
        if (
            not force_refresh
            and key in self._cache
            and cached_at
            and (now - cached_at).total_seconds() < self._cache_ttl_seconds
        ):
            return self._cache[key]

        try:
            data = self._redis.get(key)
            if data:
                self._cache[key] = json.loads(data)
                self._cache_times[key] = now
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {key} from Redis: {e}")

        return self._cache.get(key)

    def get_config(self, force_refresh: bool = False) -> Optional[Dict]:
        """Shared rule settings, in RulesConfig field names."""
        return self._get_json(RULES_CONFIG_KEY, force_refresh)

    def get_contract_sizes(self, force_refresh: bool = False) -> Dict[str, float]:
        """Contract size per symbol, keyed by upper-case symbol."""
        data = self._get_json(CONTRACT_SIZES_KEY, force_refresh) or {}
        return {str(symbol).upper(): float(size) for symbol, size in data.items()}

    def merged_rules(self, base: RulesConfig) -> RulesConfig:
        """Overlay the shared settings on a local RulesConfig."""
        overrides = dict(self.get_config() or {})
        sizes = self.get_contract_sizes()
        if sizes:
            overrides["contract_sizes"] = {**base.contract_sizes, **sizes}
        if not overrides:
            return base
        try:
            return RulesConfig(**{**base.model_dump(), **overrides})
        except ValidationError as e:
            logger.error(f"Ignoring invalid rule settings from Redis: {e}")
            return base
