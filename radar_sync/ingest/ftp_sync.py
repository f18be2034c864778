"""Sincronización de ficheros desde el FTP de los radares.

Un fichero se considera ya procesado si existe en el directorio local; no hay
otro registro. Solo se descargan ficheros cuyo nombre lleva una fecha
``dd-mm-yyyy`` dentro de la ventana configurada.
"""
from __future__ import annotations

import ftplib
import os
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Protocol

from radar_sync.config import settings
from radar_sync.exceptions import PartialDownloadError, TransportError
from radar_sync.logger import logger

FILENAME_DATE_PATTERN = re.compile(r"\d{2}-\d{2}-\d{4}")
FILENAME_DATE_FORMAT = "%d-%m-%Y"


@dataclass
class RemoteFile:
    name: str
    file_date: Optional[date]
    downloaded: bool = False
    local_path: Optional[Path] = None


class RemoteFileEndpoint(Protocol):
    def connect(self) -> None: ...

    def list_names(self) -> list[str]: ...

    def fetch(self, name: str, target: BinaryIO) -> None: ...

    def close(self) -> None: ...


class FtpRemoteEndpoint:
    """Acceso FTP basado en ``ftplib`` (modo pasivo)."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        directory: str,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.directory = directory
        self.timeout = timeout
        self._ftp: Optional[ftplib.FTP] = None

    @classmethod
    def from_settings(cls) -> "FtpRemoteEndpoint":
        return cls(
            host=settings.ftp_host,
            port=settings.ftp_port,
            user=settings.ftp_user,
            password=settings.ftp_pass,
            directory=settings.ftp_directory,
            timeout=settings.ftp_timeout_seconds,
        )

    def connect(self) -> None:
        logger.info("[FTP] Conectando a host=[%s] puerto=[%s]", self.host, self.port)
        ftp = ftplib.FTP(timeout=self.timeout)
        try:
            ftp.connect(self.host, self.port)
            ftp.login(self.user, self.password)
            ftp.set_pasv(True)
            if self.directory:
                ftp.cwd(self.directory)
        except ftplib.all_errors as exc:
            try:
                ftp.close()
            except OSError as close_exc:  # pragma: no cover
                logger.debug("[FTP] Error cerrando la conexión fallida: %s", close_exc)
            raise TransportError(f"Fallo al conectar/logar en el FTP {self.host}:{self.port}: {exc}") from exc
        self._ftp = ftp
        logger.info("[FTP] Conectado con éxito")

    def _require(self) -> ftplib.FTP:
        if self._ftp is None:
            raise TransportError("Conexión FTP no establecida")
        return self._ftp

    def list_names(self) -> list[str]:
        try:
            names = self._require().nlst()
        except ftplib.error_perm as exc:
            # Algunos servidores responden 550 cuando el directorio está vacío.
            if str(exc).startswith("550"):
                return []
            raise TransportError(f"Error listando el directorio FTP: {exc}") from exc
        except ftplib.all_errors as exc:
            raise TransportError(f"Error listando el directorio FTP: {exc}") from exc
        return [os.path.basename(name) for name in names]

    def fetch(self, name: str, target: BinaryIO) -> None:
        try:
            self._require().retrbinary(f"RETR {name}", target.write)
        except ftplib.all_errors as exc:
            raise PartialDownloadError(name, str(exc)) from exc

    def close(self) -> None:
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
            logger.info("[FTP] Conexión FTP cerrada")
        except ftplib.all_errors as exc:
            logger.error("[FTP][ERROR] Error al desconectar del FTP: %s", exc)
            self._ftp.close()
        finally:
            self._ftp = None


def extract_file_date(filename: str) -> Optional[date]:
    """Fecha ``dd-mm-yyyy`` embebida en el nombre, o ``None`` si no hay una válida."""

    match = FILENAME_DATE_PATTERN.search(filename)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(), FILENAME_DATE_FORMAT).date()
    except ValueError as exc:
        logger.warning("[FTP] Error al extraer la fecha del fichero %s: %s", filename, exc)
        return None


def list_local_files(directory: Path) -> set[str]:
    try:
        return {entry.name for entry in directory.iterdir() if entry.is_file()}
    except OSError as exc:
        logger.warning(
            "[FTP] No se pudieron listar los ficheros locales (%s). Se intentará descargar de nuevo.", exc
        )
        return set()


class RemoteFileSynchronizer:
    """Descubre, filtra y descarga los ficheros nuevos del FTP."""

    def __init__(
        self,
        endpoint_factory: Callable[[], RemoteFileEndpoint],
        local_directory: str | Path,
        window_days: int = 1,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.endpoint_factory = endpoint_factory
        self.local_directory = Path(local_directory)
        self.window_days = window_days
        self.today = today

    @classmethod
    def from_settings(cls) -> "RemoteFileSynchronizer":
        return cls(
            endpoint_factory=FtpRemoteEndpoint.from_settings,
            local_directory=settings.ftp_local_directory,
            window_days=settings.ftp_window_days,
        )

    def date_limit(self) -> date:
        return self.today() - timedelta(days=self.window_days)

    def select_candidates(self, remote_names: list[str], local_names: set[str]) -> list[RemoteFile]:
        limit = self.date_limit()
        candidates: list[RemoteFile] = []
        for name in remote_names:
            if name in local_names:
                continue
            file_date = extract_file_date(name)
            if file_date is None:
                logger.warning("[FTP] No se pudo extraer la fecha del fichero '%s'. Se ignora.", name)
                continue
            if file_date < limit:
                logger.info("[FTP] Fichero '%s' fuera del periodo (límite %s). Se ignora.", name, limit)
                continue
            candidates.append(RemoteFile(name=name, file_date=file_date))
        return candidates

    @staticmethod
    def _remove_partial(target: Path) -> None:
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:  # pragma: no cover
            logger.error("[FTP][ERROR] No se pudo borrar el fichero parcial %s: %s", target, exc)

    def _download(self, endpoint: RemoteFileEndpoint, remote: RemoteFile) -> bool:
        target = self.local_directory / remote.name
        try:
            with open(target, "wb") as handle:
                endpoint.fetch(remote.name, handle)
        except (PartialDownloadError, OSError, EOFError) as exc:
            logger.warning("[FTP] Fallo en la descarga del fichero %s: %s", remote.name, exc)
            self._remove_partial(target)
            return False
        except BaseException:
            # Un fichero a medias en disco contaría como ya procesado.
            self._remove_partial(target)
            raise

        remote.downloaded = True
        remote.local_path = target
        logger.info("[FTP] Descarga completada: %s", remote.name)
        return True

    def sync(self) -> list[RemoteFile]:
        """Ejecuta una sincronización completa.

        Un ``TransportError`` al conectar o listar aborta la ejecución; el fallo
        de un fichero concreto solo descarta ese fichero.
        """

        self.local_directory.mkdir(parents=True, exist_ok=True)
        endpoint = self.endpoint_factory()
        endpoint.connect()
        try:
            remote_names = endpoint.list_names()
            if not remote_names:
                logger.info("[FTP] Ningún fichero encontrado en el directorio del FTP")
                return []

            local_names = list_local_files(self.local_directory)
            candidates = self.select_candidates(remote_names, local_names)
            if not candidates:
                logger.info("[FTP] Ningún fichero nuevo dentro del periodo para procesar")
                return []

            logger.info("[FTP] Encontrados %s ficheros nuevos para descargar", len(candidates))
            return [remote for remote in candidates if self._download(endpoint, remote)]
        finally:
            endpoint.close()
