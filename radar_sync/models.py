"""Definiciones de modelos y configuración del ORM.

Incluye las tablas con las que trabaja el servicio:
- Location (localizaciones de referencia de los radares)
- Detection (lecturas de matrícula importadas desde el FTP)
- Highway y HighwayKm (dominio de rodovias y kms conocidos)
"""
from __future__ import annotations

import datetime as dt
from typing import List, Optional

from sqlalchemy import Date, Float, ForeignKey, Index, Integer, String, Time, UniqueConstraint, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from radar_sync.config import settings

PLATE_MAX_LENGTH = 7


class Base(DeclarativeBase):
    pass


engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)
# expire_on_commit=False: las detecciones guardadas se publican después de cerrar la sesión.
SessionLocal = sessionmaker(
    bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
)


class Location(Base):
    """Localización de referencia de un radar (solo lectura para este servicio)."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    concessionaire: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    plaza: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    highway: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    km: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="WGS84")
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="WGS84")

    detections: Mapped[List["Detection"]] = relationship("Detection", back_populates="location")


class Detection(Base):
    """Lectura de matrícula en una plaza/rodovia/km.

    Es inmutable tras guardarse salvo ``location_id``, que el job de
    vinculación rellena si quedó vacío durante la ingesta.
    """

    __tablename__ = "detections"
    __table_args__ = (
        Index("ix_detections_plate", "plate"),
        Index("ix_detections_highway_km", "highway", "km"),
        Index("ix_detections_date_time", "date", "time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    plate: Mapped[str] = mapped_column(String(PLATE_MAX_LENGTH), nullable=False)
    plaza: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    highway: Mapped[str] = mapped_column(String(64), nullable=False)
    km: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(32), nullable=False)
    location_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("locations.id"), nullable=True, index=True
    )

    location: Mapped[Optional["Location"]] = relationship("Location", back_populates="detections")

    def __repr__(self) -> str:
        return (
            f"Detection(id={self.id!r}, plate={self.plate!r}, date={self.date}, "
            f"time={self.time}, highway={self.highway!r}, km={self.km!r})"
        )


class Highway(Base):
    __tablename__ = "highways"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    kms: Mapped[List["HighwayKm"]] = relationship(
        "HighwayKm", back_populates="highway", cascade="all, delete-orphan"
    )


class HighwayKm(Base):
    __tablename__ = "highway_kms"
    __table_args__ = (UniqueConstraint("highway_id", "value", name="uq_highway_kms_highway_value"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    value: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    highway_id: Mapped[int] = mapped_column(Integer, ForeignKey("highways.id"), nullable=False)

    highway: Mapped["Highway"] = relationship("Highway", back_populates="kms")


class Direction:
    """Sentidos de circulación reconocidos en los ficheros."""

    NORTH = "Norte"
    SOUTH = "Sul"
    EAST = "Leste"
    WEST = "Oeste"
    UNIDENTIFIED = "N/I"

    KNOWN = (NORTH, SOUTH, EAST, WEST)

    @classmethod
    def match(cls, value: str | None) -> str | None:
        """Devuelve el sentido canónico si ``value`` es uno conocido (sin distinguir mayúsculas)."""

        if not value:
            return None
        candidate = value.strip().lower()
        for known in cls.KNOWN:
            if known.lower() == candidate:
                return known
        return None
