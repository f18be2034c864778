"""Montaje de los jobs periódicos del servicio."""
from __future__ import annotations

import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import time

from radar_sync.cache.store import RedisCacheStore
from radar_sync.cache.warmer import FilterCacheWarmer, warm_with_eviction
from radar_sync.config import settings
from radar_sync.ingest.ftp_sync import RemoteFileSynchronizer
from radar_sync.ingest.service import IngestionService
from radar_sync.linkage.job import LocationLinkageJob
from radar_sync.logger import logger
from radar_sync.models import SessionLocal
from radar_sync.publisher.channel import KafkaChannel
from radar_sync.publisher.publisher import DetectionPublisher
from radar_sync.scheduler import JobScheduler

INGEST_JOB = "ingestion"
LINKAGE_JOB = "location-linkage"
WARM_STARTUP_JOB = "filter-cache-startup"
WARM_DAILY_JOB = "filter-cache-daily"
HEARTBEAT_JOB = "heartbeat"


@dataclass
class Worker:
    scheduler: JobScheduler
    async_executor: ThreadPoolExecutor
    channel: KafkaChannel

    def stop(self) -> None:
        self.scheduler.shutdown(wait=True)
        self.async_executor.shutdown(wait=True)
        self.channel.close()


def log_heartbeat(scheduler: JobScheduler) -> None:
    next_run = scheduler.next_run_of(INGEST_JOB)
    if next_run is None:
        return
    remaining = max(0, int((next_run - scheduler.clock()).total_seconds()))
    logger.debug("[SCHED] Próxima ingesta en %02d:%02d", remaining // 60, remaining % 60)


def build_worker() -> Worker:
    scheduler = JobScheduler(
        pool_size=settings.scheduler_pool_size,
        await_termination_seconds=settings.scheduler_await_termination_seconds,
    )
    # Publicación y subconsultas de la caché van en un pool aparte para no
    # ocupar los hilos del planificador mientras un job espera por ellas.
    async_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="radar-async")

    channel = KafkaChannel.from_settings()
    publisher = DetectionPublisher.from_settings(channel, executor=async_executor)
    ingestion = IngestionService(SessionLocal, RemoteFileSynchronizer.from_settings(), publisher)
    linkage = LocationLinkageJob.from_settings(SessionLocal)
    warmer = FilterCacheWarmer.from_settings(SessionLocal, RedisCacheStore.from_settings(), async_executor)

    scheduler.add_fixed_rate(INGEST_JOB, ingestion.run_cycle, settings.ftp_schedule_rate_seconds)
    scheduler.add_fixed_rate(LINKAGE_JOB, linkage.run, settings.linkage_rate_seconds, initial_delay_seconds=5)
    daily_warm = scheduler.add_daily(
        WARM_DAILY_JOB, lambda: warm_with_eviction(warmer), time(hour=settings.cache_warm_hour)
    )
    # Mismo lock: el calentamiento inicial y el diario nunca se solapan.
    scheduler.add_once(WARM_STARTUP_JOB, warmer.warm, lock=daily_warm.lock)
    scheduler.add_fixed_rate(HEARTBEAT_JOB, lambda: log_heartbeat(scheduler), settings.heartbeat_rate_seconds)

    return Worker(scheduler=scheduler, async_executor=async_executor, channel=channel)


def run_worker() -> None:
    """Arranca el planificador y bloquea hasta recibir SIGINT/SIGTERM."""

    worker = build_worker()
    stop_event = threading.Event()

    def _handle_signal(signum, frame) -> None:
        logger.info("[SCHED] Señal %s recibida; cerrando", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info(
        "[SCHED] Servicio iniciado. Ingesta cada %ss, vinculación cada %ss, caché diaria a las %02d:00",
        settings.ftp_schedule_rate_seconds,
        settings.linkage_rate_seconds,
        settings.cache_warm_hour,
    )
    worker.scheduler.start()
    try:
        stop_event.wait()
    finally:
        worker.stop()
