"""Consultas paginadas de detecciones: por filtro tipado o por radio geográfico."""
from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from radar_sync.config import settings
from radar_sync.ingest.normalizer import normalize_key
from radar_sync.models import Detection, Location

MAX_PAGE_SIZE = 200
DEFAULT_RADIUS_METERS = 15000.0
EARTH_RADIUS_METERS = 6371000.0
METERS_PER_DEGREE = 111320.0


@dataclass(frozen=True)
class DetectionFilter:
    plate: Optional[str] = None
    plaza: Optional[str] = None
    highway: Optional[str] = None
    km: Optional[str] = None
    direction: Optional[str] = None
    date: Optional[dt.date] = None
    time_start: Optional[dt.time] = None
    time_end: Optional[dt.time] = None
    page: int = 0
    size: int = 20


class DetectionView(BaseModel):
    id: int
    date: dt.date
    time: dt.time
    plate: str
    plaza: str
    highway: str
    km: str
    direction: str
    location_id: Optional[int] = None


class DetectionPage(BaseModel):
    content: list[DetectionView]
    page: int
    size: int
    total_elements: int
    total_pages: int


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def build_detection_query(filters: DetectionFilter, today: Optional[dt.date] = None) -> Select:
    """Construye el ``SELECT`` parametrizado; los campos vacíos no filtran."""

    since = (today or dt.date.today()) - dt.timedelta(days=settings.query_window_days)
    conditions = [Detection.date >= since]

    if not _blank(filters.plate):
        conditions.append(func.upper(Detection.plate).contains(normalize_key(filters.plate), autoescape=True))
    if not _blank(filters.plaza):
        conditions.append(func.upper(Detection.plaza).contains(normalize_key(filters.plaza), autoescape=True))
    if not _blank(filters.highway):
        conditions.append(Detection.highway == filters.highway.strip())
    if not _blank(filters.km):
        conditions.append(Detection.km == filters.km.strip())
    if not _blank(filters.direction):
        conditions.append(Detection.direction == filters.direction.strip())
    if filters.date is not None:
        conditions.append(Detection.date == filters.date)
    if filters.time_start is not None:
        conditions.append(Detection.time >= filters.time_start)
    if filters.time_end is not None:
        conditions.append(Detection.time <= filters.time_end)

    return select(Detection).where(*conditions)


def _paginate(session: Session, base: Select, page: int, size: int) -> DetectionPage:
    size = max(1, min(size, MAX_PAGE_SIZE))
    page = max(0, page)

    total = session.scalar(select(func.count()).select_from(base.subquery())) or 0
    rows = session.scalars(
        base.order_by(Detection.date.desc(), Detection.time.desc(), Detection.plate)
        .offset(page * size)
        .limit(size)
    ).all()

    return DetectionPage(
        content=[
            DetectionView(
                id=row.id,
                date=row.date,
                time=row.time,
                plate=row.plate,
                plaza=row.plaza,
                highway=row.highway,
                km=row.km,
                direction=row.direction,
                location_id=row.location_id,
            )
            for row in rows
        ],
        page=page,
        size=size,
        total_elements=total,
        total_pages=(total + size - 1) // size,
    )


def query_detections(session: Session, filters: DetectionFilter) -> DetectionPage:
    return _paginate(session, build_detection_query(filters), filters.page, filters.size)


@dataclass(frozen=True)
class GeoSearch:
    latitude: float
    longitude: float
    date: dt.date
    time_start: dt.time
    time_end: dt.time
    radius_meters: float = DEFAULT_RADIUS_METERS
    page: int = 0
    size: int = 20


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def locations_within(session: Session, latitude: float, longitude: float, radius_meters: float) -> list[int]:
    """Ids de las localizaciones a ``radius_meters`` o menos del punto.

    Un recuadro en SQL acota los candidatos; la distancia exacta se calcula aquí.
    """

    lat_delta = radius_meters / METERS_PER_DEGREE
    cos_lat = math.cos(math.radians(latitude))
    lon_delta = 180.0 if cos_lat < 1e-6 else min(180.0, radius_meters / (METERS_PER_DEGREE * cos_lat))

    rows = session.execute(
        select(Location.id, Location.latitude, Location.longitude).where(
            Location.latitude.is_not(None),
            Location.longitude.is_not(None),
            Location.latitude.between(latitude - lat_delta, latitude + lat_delta),
            Location.longitude.between(longitude - lon_delta, longitude + lon_delta),
        )
    ).all()
    return [
        location_id
        for location_id, lat, lon in rows
        if haversine_meters(latitude, longitude, lat, lon) <= radius_meters
    ]


def query_by_geolocation(session: Session, search: GeoSearch) -> DetectionPage:
    """Detecciones del día y franja horaria en localizaciones dentro del radio."""

    if not -90 <= search.latitude <= 90 or not -180 <= search.longitude <= 180:
        raise ValueError("Coordenadas fuera de rango")
    if search.radius_meters <= 0:
        raise ValueError("El radio debe ser mayor que cero")

    location_ids = locations_within(session, search.latitude, search.longitude, search.radius_meters)
    base = select(Detection).where(
        Detection.location_id.in_(location_ids),
        Detection.date == search.date,
        Detection.time.between(search.time_start, search.time_end),
    )
    return _paginate(session, base, search.page, search.size)
