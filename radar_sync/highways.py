"""Dominio de rodovias y kms conocidos.

Mantiene las tablas ``highways`` y ``highway_kms``: altas y bajas manuales
desde la API y el registro en lote de los pares (rodovia, km) que aparecen en
cada ciclo de ingesta.
"""
from __future__ import annotations

from typing import Mapping

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from radar_sync.exceptions import DomainConflictError, DomainNotFoundError, PersistenceError
from radar_sync.logger import logger
from radar_sync.models import Highway, HighwayKm


class HighwayView(BaseModel):
    id: int
    name: str


class HighwayKmView(BaseModel):
    id: int
    value: str
    highway_id: int


def _highway_view(highway: Highway) -> HighwayView:
    return HighwayView(id=highway.id, name=highway.name)


def _km_view(km: HighwayKm) -> HighwayKmView:
    return HighwayKmView(id=km.id, value=km.value, highway_id=km.highway_id)


def list_highways(session: Session) -> list[HighwayView]:
    return [_highway_view(h) for h in session.scalars(select(Highway).order_by(Highway.name)).all()]


def create_highway(session: Session, name: str) -> HighwayView:
    name = name.strip()
    if not name:
        raise ValueError("El nombre de la rodovia es obligatorio")
    if session.scalar(select(Highway.id).where(Highway.name == name)) is not None:
        raise DomainConflictError(f"La rodovia {name} ya existe")

    highway = Highway(name=name)
    session.add(highway)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise DomainConflictError(f"La rodovia {name} ya existe") from exc
    logger.info("[DOMAIN] Rodovia %s registrada (id=%s)", highway.name, highway.id)
    return _highway_view(highway)


def delete_highway(session: Session, highway_id: int) -> None:
    highway = session.get(Highway, highway_id)
    if highway is None:
        raise DomainNotFoundError(f"Rodovia {highway_id} no encontrada")
    name = highway.name
    session.delete(highway)
    session.commit()
    logger.info("[DOMAIN] Rodovia %s eliminada junto con sus kms", name)


def list_kms(session: Session, highway_id: int) -> list[HighwayKmView]:
    if session.get(Highway, highway_id) is None:
        raise DomainNotFoundError(f"Rodovia {highway_id} no encontrada")
    kms = session.scalars(select(HighwayKm).where(HighwayKm.highway_id == highway_id).order_by(HighwayKm.id))
    return [_km_view(km) for km in kms.all()]


def create_km(session: Session, highway_id: int, value: str) -> HighwayKmView:
    value = value.strip()
    if not value:
        raise ValueError("El valor del km es obligatorio")
    if session.get(Highway, highway_id) is None:
        raise DomainNotFoundError(f"Rodovia {highway_id} no encontrada")

    km = HighwayKm(highway_id=highway_id, value=value)
    session.add(km)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise DomainConflictError(f"El km {value} ya existe en la rodovia {highway_id}") from exc
    return _km_view(km)


def delete_km(session: Session, km_id: int) -> None:
    km = session.get(HighwayKm, km_id)
    if km is None:
        raise DomainNotFoundError(f"Km {km_id} no encontrado")
    session.delete(km)
    session.commit()


def register_discoveries(session: Session, discoveries: Mapping[str, set[str]]) -> int:
    """Da de alta las rodovias y kms que aún no existen; devuelve cuántos kms se añadieron.

    Todo va en una única transacción: ante un error de base de datos no queda
    nada a medias y se lanza ``PersistenceError``.
    """

    discoveries = {name.strip(): kms for name, kms in discoveries.items() if name and name.strip()}
    if not discoveries:
        return 0

    try:
        existing = {
            h.name: h for h in session.scalars(select(Highway).where(Highway.name.in_(discoveries))).all()
        }
        added = 0
        for name, kms in discoveries.items():
            highway = existing.get(name)
            if highway is None:
                highway = Highway(name=name)
                session.add(highway)
                session.flush()
                logger.info("[DOMAIN] Nueva rodovia registrada en el dominio: %s", name)
                known: set[str] = set()
            else:
                known = set(
                    session.scalars(select(HighwayKm.value).where(HighwayKm.highway_id == highway.id)).all()
                )

            for value in sorted({km.strip() for km in kms if km and km.strip()} - known):
                session.add(HighwayKm(highway_id=highway.id, value=value))
                added += 1
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"Error registrando rodovias/kms descubiertos: {exc}") from exc

    if added:
        logger.info("[DOMAIN] %s kms nuevos añadidos al dominio", added)
    return added
