"""Parser de las líneas de texto exportadas por los radares.

Cada línea útil tiene seis grupos separados por espacios::

    2025-06-06 14:30:00.120 ABC1234 Praça Norte Sul SP-330 KM145+200

El parser nunca lanza excepciones: devuelve ``Parsed`` con la detección,
``SilentSkip`` para cabeceras/pies/separadores o ``WarnedSkip`` para líneas con
aspecto de dato que no se pueden convertir.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Union

from radar_sync.logger import logger
from radar_sync.models import PLATE_MAX_LENGTH, Detection, Direction

FILE_ENCODING = "ISO-8859-1"

LINE_PATTERN = re.compile(r"^(\S+)\s+(\S+)\s+(\S+)\s+(.+?)\s+(SP\S+)\s+(KM\S+)$")
KM_PREFIX = "KM"
# Solo el prefijo: el acento de "Data_Transação" depende de la codificación del export.
HEADER_MARKER = "Data_Transa"
BANNER_PREFIX = "Changed database"
SEPARATOR_PATTERN = re.compile(r"^[-\s]+$")
ROW_COUNT_PATTERN = re.compile(r"^\(\d+ rows? affected\)$")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True)
class Parsed:
    detection: Detection


@dataclass(frozen=True)
class SilentSkip:
    """Línea de relleno (vacía, cabecera, separador o recuento de filas)."""


@dataclass(frozen=True)
class WarnedSkip:
    reason: str


ParseResult = Union[Parsed, SilentSkip, WarnedSkip]


@dataclass
class FileParseResult:
    path: Path
    detections: list[Detection] = field(default_factory=list)
    silent_skips: int = 0
    warned_skips: int = 0


def is_boilerplate(line: str) -> bool:
    stripped = line.strip()
    return (
        not stripped
        or HEADER_MARKER in line
        or line.startswith(BANNER_PREFIX)
        or SEPARATOR_PATTERN.match(line) is not None
        or ROW_COUNT_PATTERN.match(stripped) is not None
    )


def normalize_plate(raw_plate: str) -> str:
    """Elimina todo lo que no sea alfanumérico y recorta a 7 caracteres."""

    return _NON_ALNUM.sub("", raw_plate)[:PLATE_MAX_LENGTH]


def split_plaza_direction(blob: str) -> tuple[str, str]:
    """Separa el bloque ``praça + sentido``: el último token es el sentido.

    Con un único token: si es un sentido conocido la praça queda vacía; si no,
    el token es la praça y el sentido queda como no identificado.
    """

    parts = blob.split()
    if len(parts) > 1:
        return " ".join(parts[:-1]), parts[-1]

    token = parts[0] if parts else ""
    if Direction.match(token):
        return "", token
    return token, Direction.UNIDENTIFIED


def _parse_date(value: str) -> date:
    return datetime.strptime(value, "%Y-%m-%d").date()


def _parse_time(value: str) -> time:
    fmt = "%H:%M:%S.%f" if "." in value else "%H:%M:%S"
    return datetime.strptime(value, fmt).time()


def parse_line(raw_line: str) -> ParseResult:
    line = raw_line.rstrip("\r\n")
    if is_boilerplate(line):
        return SilentSkip()

    match = LINE_PATTERN.match(line.strip())
    if not match:
        logger.warning("[PARSER] Línea no corresponde al patrón esperado, se ignora: %r", line)
        return WarnedSkip("Línea no corresponde al patrón esperado")

    date_str, time_str, raw_plate, plaza_blob, highway, km_token = match.groups()
    try:
        parsed_date = _parse_date(date_str)
        parsed_time = _parse_time(time_str)
    except ValueError as exc:
        logger.warning("[PARSER] Error convirtiendo fecha/hora de la línea %r: %s", line, exc)
        return WarnedSkip(f"Fecha/hora inválida: {exc}")

    plate = normalize_plate(raw_plate)
    if not plate:
        logger.warning("[PARSER] Matrícula vacía tras normalizar, se ignora: %r", line)
        return WarnedSkip("Matrícula vacía")

    plaza, direction = split_plaza_direction(plaza_blob.strip())
    km = km_token[len(KM_PREFIX):].strip()

    return Parsed(
        Detection(
            date=parsed_date,
            time=parsed_time,
            plate=plate,
            plaza=plaza,
            highway=highway,
            km=km,
            direction=direction,
            location_id=None,
        )
    )


def parse_file(path: Path) -> FileParseResult:
    """Parsea un fichero completo descargado del FTP."""

    result = FileParseResult(path=path)
    with open(path, "r", encoding=FILE_ENCODING) as handle:
        for raw_line in handle:
            outcome = parse_line(raw_line)
            if isinstance(outcome, Parsed):
                result.detections.append(outcome.detection)
            elif isinstance(outcome, WarnedSkip):
                result.warned_skips += 1
            else:
                result.silent_skips += 1

    logger.info(
        "[PARSER] %s: %s detecciones, %s líneas descartadas con aviso, %s de relleno",
        path.name,
        len(result.detections),
        result.warned_skips,
        result.silent_skips,
    )
    return result
