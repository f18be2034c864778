"""CLI administrativa para lanzar a mano cada uno de los jobs."""
from __future__ import annotations

import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Optional

from radar_sync.cache.store import RedisCacheStore
from radar_sync.cache.warmer import FilterCacheWarmer
from radar_sync.exceptions import RadarSyncError
from radar_sync.ingest.ftp_sync import RemoteFileSynchronizer
from radar_sync.ingest.service import IngestionService
from radar_sync.linkage.job import LocationLinkageJob
from radar_sync.models import SessionLocal
from radar_sync.publisher.channel import KafkaChannel
from radar_sync.publisher.publisher import DetectionPublisher

logger = logging.getLogger("radar_sync.admin")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Herramientas administrativas de radar-sync")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest_parser = subparsers.add_parser("ingest-once", help="Ejecuta un ciclo de ingesta del FTP")
    ingest_parser.add_argument(
        "--no-publish",
        action="store_true",
        help="Guarda las detecciones sin publicarlas en el canal de eventos",
    )

    subparsers.add_parser("link-once", help="Vincula las detecciones sin localización")
    subparsers.add_parser("warm-cache", help="Recalcula la caché de filtros")
    subparsers.add_parser("evict-cache", help="Vacía todas las claves de caché del servicio")
    return parser.parse_args(argv)


def _ingest_once(no_publish: bool) -> int:
    channel = None if no_publish else KafkaChannel.from_settings()
    publisher = DetectionPublisher.from_settings(channel) if channel else None
    service = IngestionService(SessionLocal, RemoteFileSynchronizer.from_settings(), publisher)
    try:
        report = service.run_cycle()
    finally:
        if channel is not None:
            channel.close()
    print(
        f"Ficheros={report.files} detecciones={report.detections} "
        f"vinculadas={report.linked} guardadas={report.saved}"
    )
    return 0


def _link_once() -> int:
    report = LocationLinkageJob.from_settings(SessionLocal).run()
    print(f"Lotes={report.batches} revisadas={report.scanned} vinculadas={report.linked}")
    return 0


def _warm_cache() -> int:
    with ThreadPoolExecutor(max_workers=4, thread_name_prefix="radar-admin") as executor:
        warmer = FilterCacheWarmer.from_settings(SessionLocal, RedisCacheStore.from_settings(), executor)
        report = warmer.warm()
        wait(report.km_jobs)
    print(
        f"Rodovias={len(report.metadata.highways)} praças={len(report.metadata.plazas)} "
        f"kms={len(report.metadata.kms)} sentidos={len(report.metadata.directions)}"
    )
    return 0


def _evict_cache() -> int:
    RedisCacheStore.from_settings().evict_all()
    print("Caché vaciada")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        if args.command == "ingest-once":
            return _ingest_once(args.no_publish)
        if args.command == "link-once":
            return _link_once()
        if args.command == "warm-cache":
            return _warm_cache()
        if args.command == "evict-cache":
            return _evict_cache()
    except RadarSyncError as exc:
        logger.error("Error ejecutando %s: %s", args.command, exc)
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
