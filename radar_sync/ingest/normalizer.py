"""Normalización de claves de emparejamiento entre detecciones y localizaciones."""
from __future__ import annotations

import re
from typing import Optional

_NON_ALNUM = re.compile(r"[^0-9A-Z]")
_KM_PREFIX = re.compile(r"^KM")


def normalize_key(value: Optional[str]) -> str:
    """Trim + mayúsculas. ``None`` se trata como cadena vacía."""

    if value is None:
        return ""
    return value.strip().upper()


def normalize_highway(value: Optional[str]) -> str:
    """Clave tolerante de rodovia: ``" sp-330 "``, ``"SP 330"`` y ``"SP330"`` coinciden."""

    return _NON_ALNUM.sub("", normalize_key(value))


def normalize_km(value: Optional[str]) -> str:
    """Clave tolerante de km.

    Solo se compara el tramo anterior al separador de continuación ``+``
    (``"145+200"`` -> ``"145"``) y se descarta un prefijo ``KM`` residual.
    """

    head = normalize_key(value).split("+", 1)[0]
    return _KM_PREFIX.sub("", _NON_ALNUM.sub("", head))


def highway_km_key(highway: Optional[str], km: Optional[str]) -> tuple[str, str] | None:
    """Clave compuesta (rodovia, km); ``None`` si alguno de los lados queda vacío."""

    highway_key = normalize_highway(highway)
    km_key = normalize_km(km)
    if not highway_key or not km_key:
        return None
    return highway_key, km_key
