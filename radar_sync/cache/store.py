"""Caché TTL sobre Redis con valores JSON."""
from __future__ import annotations

import json
from typing import Any, Optional, Protocol

from redis import Redis
from redis.exceptions import RedisError

from radar_sync.config import settings
from radar_sync.logger import logger


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def put(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def evict(self, key: str) -> None: ...

    def evict_all(self) -> None: ...


class RedisCacheStore:
    """Guarda valores serializados en JSON bajo ``<prefix>:<key>``.

    Los fallos de Redis se registran y se tratan como fallo de caché: la
    lectura devuelve ``None`` y la escritura se omite.
    """

    def __init__(self, client: Redis, prefix: str = "radar-sync") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_settings(cls) -> "RedisCacheStore":
        return cls(Redis.from_url(settings.redis_url, decode_responses=True), settings.cache_key_prefix)

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(key))
        except RedisError as exc:
            logger.warning("[CACHE] Error leyendo %s de Redis: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("[CACHE] Valor corrupto en %s; se descarta", key)
            return None

    def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self.client.set(self._key(key), json.dumps(value, ensure_ascii=False), ex=ttl_seconds)
        except RedisError as exc:
            logger.warning("[CACHE] Error escribiendo %s en Redis: %s", key, exc)

    def evict(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except RedisError as exc:
            logger.warning("[CACHE] Error borrando %s de Redis: %s", key, exc)

    def evict_all(self) -> None:
        try:
            keys = list(self.client.scan_iter(match=f"{self.prefix}:*"))
            if keys:
                self.client.delete(*keys)
            logger.info("[CACHE] %s claves eliminadas de Redis", len(keys))
        except RedisError as exc:
            logger.warning("[CACHE] Error vaciando la caché en Redis: %s", exc)
