"""Errores propios de radar-sync.

Cada tipo delimita el alcance de un fallo: un ciclo de ingesta entero, un
fichero, un mensaje o una ejecución del job de vinculación.
"""


class RadarSyncError(Exception):
    """Base de todos los errores del servicio."""


class TransportError(RadarSyncError):
    """Fallo de conexión o login contra el FTP. Aborta el ciclo de ingesta."""


class PartialDownloadError(RadarSyncError):
    """Fallo descargando un único fichero; el resto del ciclo continúa."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason


class PersistenceError(RadarSyncError):
    """Fallo guardando el lote de detecciones de un ciclo."""


class PublishError(RadarSyncError):
    """Fallo publicando un mensaje en el canal de eventos."""


class LinkageBatchError(RadarSyncError):
    """Fallo en un lote del job de vinculación de localizaciones."""


class CacheWarmTimeout(RadarSyncError, TimeoutError):
    """Las consultas de metadatos de filtros no terminaron a tiempo."""


class DomainConflictError(RadarSyncError):
    """La rodovia o el km ya existen en el dominio."""


class DomainNotFoundError(RadarSyncError):
    """La rodovia o el km indicados no existen."""
