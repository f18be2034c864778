"""Publicación de detecciones recientes en el canal de eventos.

La publicación es independiente de la persistencia: se lanza tras el commit,
solo reenvía detecciones dentro de la ventana de frescura y un fallo en un
mensaje no afecta al resto del lote ni a lo ya guardado.
"""
from __future__ import annotations

import time
from concurrent.futures import Executor, Future
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from radar_sync.config import settings
from radar_sync.exceptions import PublishError
from radar_sync.logger import logger
from radar_sync.models import Detection
from radar_sync.publisher.channel import MessageChannel

MESSAGE_SEPARATOR = "|"


def source_from_routing_key(routing_key: str) -> str:
    """``"radars.cart"`` -> ``"CART"``; sin punto se usa la clave completa."""

    parts = routing_key.split(".")
    segment = parts[1] if len(parts) > 1 and parts[1] else parts[0]
    return segment.upper()


def format_time(value) -> str:
    if value.microsecond:
        return value.isoformat(timespec="milliseconds")
    return value.isoformat(timespec="seconds")


def format_message(source: str, detection: Detection) -> str:
    return MESSAGE_SEPARATOR.join(
        [
            source,
            detection.date.isoformat(),
            format_time(detection.time),
            detection.plate,
            detection.plaza or "",
            detection.highway,
            detection.km,
            detection.direction,
        ]
    )


def _is_publishable(detection: Detection) -> bool:
    return (
        detection is not None
        and detection.date is not None
        and detection.time is not None
        and bool(detection.plate)
    )


class DetectionPublisher:
    def __init__(
        self,
        channel: MessageChannel,
        destination: str,
        routing_key: str,
        freshness_hours: float = 5.0,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.channel = channel
        self.destination = destination
        self.source = source_from_routing_key(routing_key)
        self.freshness = timedelta(hours=freshness_hours)
        self.executor = executor
        self.clock = clock

    @classmethod
    def from_settings(cls, channel: MessageChannel, executor: Optional[Executor] = None) -> "DetectionPublisher":
        return cls(
            channel=channel,
            destination=settings.publish_topic,
            routing_key=settings.publish_routing_key,
            freshness_hours=settings.publish_freshness_hours,
            executor=executor,
        )

    def is_fresh(self, detection: Detection, now: datetime) -> bool:
        detected_at = datetime.combine(detection.date, detection.time)
        return detected_at >= now - self.freshness

    def select_fresh(self, detections: Iterable[Detection]) -> list[Detection]:
        now = self.clock()
        return [d for d in detections if _is_publishable(d) and self.is_fresh(d, now)]

    def publish_batch(self, detections: Sequence[Detection]) -> int:
        """Publica las detecciones frescas del lote; devuelve cuántas se enviaron."""

        started = time.monotonic()
        fresh = self.select_fresh(detections)
        sent = 0
        for detection in fresh:
            try:
                self.channel.publish(self.destination, format_message(self.source, detection))
                sent += 1
            except PublishError as exc:
                logger.warning("[PUBLISH] Fallo publicando matrícula %s: %s", detection.plate, exc)
            except Exception:
                logger.exception("[PUBLISH][ERROR] Error inesperado publicando matrícula %s", detection.plate)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "[PUBLISH] Lote publicado: recibidas=%s frescas=%s enviadas=%s duración=%sms",
            len(detections),
            len(fresh),
            sent,
            elapsed_ms,
        )
        return sent

    def submit(self, detections: Sequence[Detection]) -> Optional[Future]:
        """Lanza la publicación sin esperar; sin executor publica en el hilo actual."""

        batch = list(detections)
        if not batch:
            return None
        if self.executor is None:
            self.publish_batch(batch)
            return None
        return self.executor.submit(self.publish_batch, batch)
