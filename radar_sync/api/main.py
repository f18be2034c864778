"""Aplicación FastAPI de lectura para radar-sync.

Expone `/health`, la consulta paginada de detecciones (por filtros o por radio
geográfico), las listas de filtros servidas desde la caché de Redis y la gestión
del dominio de rodovias y kms.
"""
import datetime as dt
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import func

from radar_sync import highways
from radar_sync.cache.filters import FilterMetadata, FilterReader, LocationView
from radar_sync.cache.store import RedisCacheStore
from radar_sync.exceptions import DomainConflictError, DomainNotFoundError
from radar_sync.highways import HighwayKmView, HighwayView
from radar_sync.logger import logger
from radar_sync.models import Detection, SessionLocal
from radar_sync.query import (
    DEFAULT_RADIUS_METERS,
    DetectionFilter,
    DetectionPage,
    GeoSearch,
    query_by_geolocation,
    query_detections,
)

app = FastAPI(title="radar-sync", version="0.1.0")

_reader: Optional[FilterReader] = None


def get_filter_reader() -> FilterReader:
    global _reader
    if _reader is None:
        _reader = FilterReader(SessionLocal, RedisCacheStore.from_settings())
    return _reader


@app.get("/health")
def healthcheck() -> dict[str, int | str]:
    """Endpoint de salud con el conteo de detecciones pendientes de vincular."""

    session = SessionLocal()
    try:
        unlinked = session.query(func.count(Detection.id)).filter(Detection.location_id.is_(None)).scalar()
        total = session.query(func.count(Detection.id)).scalar()
    finally:
        session.close()

    return {
        "status": "ok",
        "unlinked_detections": int(unlinked or 0),
        "total_detections": int(total or 0),
    }


@app.get("/radares", response_model=DetectionPage)
def list_detections(
    placa: Optional[str] = None,
    praca: Optional[str] = None,
    rodovia: Optional[str] = None,
    km: Optional[str] = None,
    sentido: Optional[str] = None,
    data: Optional[dt.date] = None,
    hora_inicial: Optional[dt.time] = None,
    hora_final: Optional[dt.time] = None,
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=200),
) -> DetectionPage:
    filters = DetectionFilter(
        plate=placa,
        plaza=praca,
        highway=rodovia,
        km=km,
        direction=sentido,
        date=data,
        time_start=hora_inicial,
        time_end=hora_final,
        page=page,
        size=size,
    )
    session = SessionLocal()
    try:
        return query_detections(session, filters)
    except Exception as exc:
        logger.exception("[API] Error consultando detecciones")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error consultando detecciones",
        ) from exc
    finally:
        session.close()


@app.get("/filtros", response_model=FilterMetadata)
def filter_metadata() -> FilterMetadata:
    return get_filter_reader().get_filter_metadata()


@app.get("/filtros/kms", response_model=list[str])
def kms_for_highway(rodovia: str) -> list[str]:
    if not rodovia.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="rodovia obligatoria")
    return get_filter_reader().get_kms_for_highway(rodovia.strip())


@app.get("/localizacoes", response_model=list[LocationView])
def list_locations() -> list[LocationView]:
    return get_filter_reader().list_locations()


@app.get("/radares/geo-search", response_model=DetectionPage)
def geo_search(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    data: dt.date = Query(...),
    hora_inicio: dt.time = Query(..., alias="horaInicio"),
    hora_fim: dt.time = Query(..., alias="horaFim"),
    raio: float = Query(DEFAULT_RADIUS_METERS, gt=0),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=200),
) -> DetectionPage:
    """Detecciones en localizaciones a ``raio`` metros o menos del punto indicado."""

    search = GeoSearch(
        latitude=latitude,
        longitude=longitude,
        date=data,
        time_start=hora_inicio,
        time_end=hora_fim,
        radius_meters=raio,
        page=page,
        size=size,
    )
    session = SessionLocal()
    try:
        return query_by_geolocation(session, search)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    finally:
        session.close()


class HighwayIn(BaseModel):
    name: str


class HighwayKmIn(BaseModel):
    value: str
    highway_id: int


def _domain_call(operation, *args):
    session = SessionLocal()
    try:
        return operation(session, *args)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DomainNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DomainConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    finally:
        session.close()


@app.get("/rodovias", response_model=list[HighwayView])
def get_highways() -> list[HighwayView]:
    return _domain_call(highways.list_highways)


@app.post("/rodovias", response_model=HighwayView, status_code=status.HTTP_201_CREATED)
def post_highway(payload: HighwayIn) -> HighwayView:
    return _domain_call(highways.create_highway, payload.name)


@app.delete("/rodovias/{highway_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_highway(highway_id: int) -> None:
    _domain_call(highways.delete_highway, highway_id)


@app.get("/rodovias/{highway_id}/kms", response_model=list[HighwayKmView])
def get_highway_kms(highway_id: int) -> list[HighwayKmView]:
    return _domain_call(highways.list_kms, highway_id)


@app.post("/kms", response_model=HighwayKmView, status_code=status.HTTP_201_CREATED)
def post_km(payload: HighwayKmIn) -> HighwayKmView:
    return _domain_call(highways.create_km, payload.highway_id, payload.value)


@app.delete("/kms/{km_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_km(km_id: int) -> None:
    _domain_call(highways.delete_km, km_id)
