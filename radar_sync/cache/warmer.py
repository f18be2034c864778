"""Precalentamiento de la caché de filtros.

Se ejecuta al arrancar y una vez al día: recalcula los metadatos de filtros
lanzando las cuatro consultas de valores distintos en paralelo y, después,
encola sin esperar el recálculo de los kms de cada rodovia.
"""
from __future__ import annotations

import time
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from radar_sync.cache.filters import (
    FILTER_COLUMNS,
    FilterMetadata,
    distinct_kms_for_highway,
    distinct_values,
    filter_since,
    kms_cache_key,
)
from radar_sync.cache.store import CacheStore
from radar_sync.config import settings
from radar_sync.exceptions import CacheWarmTimeout
from radar_sync.logger import logger


@dataclass
class WarmReport:
    metadata: FilterMetadata
    km_jobs: list[Future] = field(default_factory=list)
    elapsed_ms: int = 0


class FilterCacheWarmer:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: CacheStore,
        executor: Executor,
        timeout_seconds: float = 60.0,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session_factory = session_factory
        self.cache = cache
        self.executor = executor
        self.timeout_seconds = timeout_seconds
        self.today = today

    @classmethod
    def from_settings(
        cls, session_factory: Callable[[], Session], cache: CacheStore, executor: Executor
    ) -> "FilterCacheWarmer":
        return cls(session_factory, cache, executor, timeout_seconds=settings.cache_warm_timeout_seconds)

    def _query(self, field_name: str, since: date) -> list[str]:
        session = self.session_factory()
        try:
            return distinct_values(session, field_name, since)
        finally:
            session.close()

    def compute_metadata(self) -> FilterMetadata:
        """Lanza las cuatro consultas en paralelo y espera a todas (con timeout)."""

        since = filter_since(self.today())
        futures = {name: self.executor.submit(self._query, name, since) for name in FILTER_COLUMNS}
        done, not_done = wait(futures.values(), timeout=self.timeout_seconds)
        if not_done:
            for future in not_done:
                future.cancel()
            raise CacheWarmTimeout(
                f"Consultas de filtros sin terminar tras {self.timeout_seconds:.0f}s ({len(not_done)} pendientes)"
            )
        return FilterMetadata(**{name: future.result() for name, future in futures.items()})

    def refresh_highway_kms(self, highway: str) -> list[str]:
        session = self.session_factory()
        try:
            kms = distinct_kms_for_highway(session, highway, filter_since(self.today()))
        finally:
            session.close()
        self.cache.put(kms_cache_key(highway), kms, settings.cache_kms_ttl_seconds)
        logger.debug("[CACHE] Kms de %s actualizados (%s valores)", highway, len(kms))
        return kms

    def _refresh_highway_kms_logged(self, highway: str) -> list[str]:
        try:
            return self.refresh_highway_kms(highway)
        except Exception:
            logger.exception("[CACHE][ERROR] Error recalculando kms de la rodovia %s", highway)
            raise

    def warm(self) -> WarmReport:
        started = time.monotonic()
        logger.info("[CACHE] Recalculando metadatos de filtros")

        metadata = self.compute_metadata()
        self.cache.put(settings.cache_filters_key, metadata.model_dump(), settings.cache_filters_ttl_seconds)

        km_jobs = [
            self.executor.submit(self._refresh_highway_kms_logged, highway) for highway in metadata.highways
        ]

        report = WarmReport(
            metadata=metadata,
            km_jobs=km_jobs,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "[CACHE] Filtros actualizados: rodovias=%s praças=%s kms=%s sentidos=%s; "
            "%s recálculos de kms encolados (%sms)",
            len(metadata.highways),
            len(metadata.plazas),
            len(metadata.kms),
            len(metadata.directions),
            len(km_jobs),
            report.elapsed_ms,
        )
        return report

    def evict_read_caches(self) -> None:
        """Vaciado diario de las cachés de lectura antes de recalentarlas."""

        self.cache.evict_all()


def warm_with_eviction(warmer: FilterCacheWarmer) -> WarmReport:
    warmer.evict_read_caches()
    return warmer.warm()
