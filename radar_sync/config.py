"""Configuración de radar-sync.

Este módulo define la clase de configuración que centraliza los parámetros
principales del servicio. En producción, las variables se leen del entorno
(sistema o servicio de secrets). En desarrollo se puede usar un archivo `.env`
en la raíz del proyecto.
"""
import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Clase de configuración para todo el servicio.

    Los valores se obtienen por orden de prioridad de Pydantic: argumentos
    directos, variables de entorno (nombre del campo en mayúsculas) y el
    archivo `.env`.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    db_host: str = Field("localhost")
    db_port: int = Field(5432)
    db_name: str = Field("radars")
    db_user: str = Field("radars")
    db_password: str = Field("changeme")
    db_url: str | None = Field(None, description="URL completa; tiene prioridad sobre db_*")

    ftp_host: str = Field("localhost")
    ftp_port: int = Field(21)
    ftp_user: str = Field("anonymous")
    ftp_pass: str = Field("")
    ftp_directory: str = Field("/")
    ftp_local_directory: str = Field(
        "data/ftp",
        description="Directorio local; la presencia de un fichero marca que ya se procesó",
    )
    ftp_timeout_seconds: float = Field(30.0)
    ftp_window_days: int = Field(1, description="Antigüedad máxima (días) del fichero según su nombre")
    ftp_schedule_rate_seconds: int = Field(300)

    kafka_broker: str = Field("localhost:9092")
    kafka_client_id: str = Field("radar-sync")
    publish_topic: str = Field("radars-cart")
    publish_routing_key: str = Field("radars.cart")
    publish_freshness_hours: float = Field(5.0)
    publish_delivery_timeout_seconds: float = Field(10.0)

    linkage_batch_size: int = Field(5000)
    linkage_pause_seconds: float = Field(0.5)
    linkage_max_iterations: int = Field(200)
    linkage_rate_seconds: int = Field(10)

    redis_url: str = Field("redis://localhost:6379/0")
    cache_key_prefix: str = Field("radar-sync")
    cache_filters_key: str = Field("opcoes-filtro-cart-v2")
    cache_kms_key: str = Field("kms-rodovia-cart-v2")
    cache_locations_key: str = Field("mapa-radares-cart")
    cache_filters_ttl_seconds: int = Field(30 * 3600)
    cache_kms_ttl_seconds: int = Field(30)
    cache_locations_ttl_seconds: int = Field(24 * 3600)
    cache_warm_hour: int = Field(3, description="Hora local del recálculo diario")
    cache_warm_timeout_seconds: float = Field(60.0)
    filter_window_days: int = Field(30)
    query_window_days: int = Field(90)

    scheduler_pool_size: int = Field(5)
    scheduler_await_termination_seconds: float = Field(60.0)
    heartbeat_rate_seconds: int = Field(60)

    log_level: str = Field("INFO")
    log_dir: str | None = Field(None, description="Si se define, añade rotación diaria a fichero")
    log_keep_days: int = Field(7)

    @property
    def database_url(self) -> str:
        """Construye la URL de conexión a PostgreSQL para SQLAlchemy."""

        if self.db_url:
            return self.db_url
        return (
            f"postgresql+psycopg2://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


def _ensure_local_dir(path: str) -> None:
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as exc:  # pragma: no cover
        logger.error("No se pudo crear el directorio local de ficheros %s: %s", path, exc)


settings = Settings()
_ensure_local_dir(settings.ftp_local_directory)
