"""Canal de mensajes hacia el bus de eventos (Kafka)."""
from __future__ import annotations

import threading
import time
from typing import Optional, Protocol

from confluent_kafka import KafkaError, KafkaException, Producer

from radar_sync.config import settings
from radar_sync.exceptions import PublishError
from radar_sync.logger import logger


class MessageChannel(Protocol):
    def publish(self, destination: str, payload: str) -> None: ...

    def close(self) -> None: ...


class KafkaChannel:
    """Productor Kafka que espera la confirmación de entrega de cada mensaje.

    ``publish`` lanza ``PublishError`` si el broker rechaza el mensaje o no
    confirma dentro de ``delivery_timeout``.
    """

    def __init__(self, delivery_timeout: float = 10.0, producer_conf: Optional[dict] = None) -> None:
        base_conf = {
            "bootstrap.servers": settings.kafka_broker,
            "client.id": settings.kafka_client_id,
            "acks": "all",
            "message.send.max.retries": 3,
            "socket.timeout.ms": 30000,
            "request.timeout.ms": 30000,
            "linger.ms": 5,
        }
        if producer_conf:
            base_conf.update(producer_conf)

        self.producer = Producer(base_conf)
        self.delivery_timeout = delivery_timeout
        self.metrics = {"publish_ok": 0, "publish_failed": 0, "publish_timeout": 0}
        self._metrics_lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "KafkaChannel":
        return cls(delivery_timeout=settings.publish_delivery_timeout_seconds)

    def _count(self, key: str) -> None:
        with self._metrics_lock:
            self.metrics[key] += 1

    def publish(self, destination: str, payload: str) -> None:
        delivered: dict = {"err": None}
        event = threading.Event()

        def _on_delivery(err, msg) -> None:
            delivered["err"] = err
            event.set()

        try:
            self.producer.produce(topic=destination, value=payload.encode("utf-8"), callback=_on_delivery)
        except (BufferError, KafkaException) as exc:
            self._count("publish_failed")
            raise PublishError(f"Kafka rechazó el mensaje: {exc}") from exc

        deadline = time.monotonic() + self.delivery_timeout
        while not event.is_set() and time.monotonic() < deadline:
            self.producer.poll(0.1)

        if not event.is_set():
            self._count("publish_timeout")
            raise PublishError(f"Timeout esperando confirmación de Kafka ({self.delivery_timeout:.1f}s)")

        err = delivered["err"]
        if err is not None:
            self._count("publish_failed")
            message = err.str() if isinstance(err, KafkaError) else str(err)
            raise PublishError(f"Entrega fallida en Kafka: {message}")

        self._count("publish_ok")

    def close(self, timeout: float = 5.0) -> None:
        remaining = self.producer.flush(timeout)
        if remaining:
            logger.warning("[PUBLISH] %s mensajes sin confirmar al cerrar el productor", remaining)
        logger.info("[PUBLISH] Productor Kafka cerrado. Métricas: %s", self.metrics)
