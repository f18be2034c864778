from datetime import date, time, timedelta

import pytest
from fastapi import HTTPException

from radar_sync.api import main as api
from radar_sync.models import Detection
from radar_sync.query import DetectionFilter, query_detections

TODAY = date.today()


@pytest.fixture
def seeded(session_factory):
    session = session_factory()
    session.add_all(
        [
            Detection(date=TODAY, time=time(8), plate="ABC1234", plaza="PRACA SUL", highway="SP-330", km="145", direction="Sul"),
            Detection(date=TODAY, time=time(9), plate="ABC9999", plaza="PRACA NORTE", highway="SP-280", km="20", direction="Norte"),
            Detection(date=TODAY, time=time(10), plate="XYZ1111", plaza="PRACA SUL", highway="SP-330", km="146", direction="Sul"),
            Detection(
                date=TODAY - timedelta(days=120), time=time(8), plate="ABC0000", plaza="PRACA SUL",
                highway="SP-330", km="145", direction="Sul",
            ),
        ]
    )
    session.commit()
    session.close()
    return session_factory


def _query(factory, **kwargs):
    session = factory()
    try:
        return query_detections(session, DetectionFilter(**kwargs))
    finally:
        session.close()


def test_empty_filter_returns_recent_detections_newest_first(seeded):
    page = _query(seeded)

    assert [d.plate for d in page.content] == ["XYZ1111", "ABC9999", "ABC1234"]
    assert page.total_elements == 3
    assert page.total_pages == 1


def test_plate_filter_is_partial_and_case_insensitive(seeded):
    page = _query(seeded, plate="abc")

    assert {d.plate for d in page.content} == {"ABC1234", "ABC9999"}


def test_combined_filters_and_time_range(seeded):
    page = _query(seeded, highway="SP-330", direction="Sul", time_start=time(9), time_end=time(11))

    assert [d.plate for d in page.content] == ["XYZ1111"]


def test_pagination(seeded):
    page = _query(seeded, page=1, size=2)

    assert [d.plate for d in page.content] == ["ABC1234"]
    assert page.total_pages == 2


def test_api_list_detections_uses_query_params(seeded, monkeypatch):
    monkeypatch.setattr(api, "SessionLocal", seeded)

    page = api.list_detections(
        placa=None,
        praca="norte",
        rodovia=None,
        km=None,
        sentido=None,
        data=None,
        hora_inicial=None,
        hora_final=None,
        page=0,
        size=20,
    )

    assert [d.plate for d in page.content] == ["ABC9999"]


def test_api_health_counts_unlinked(seeded, monkeypatch):
    monkeypatch.setattr(api, "SessionLocal", seeded)

    assert api.healthcheck() == {"status": "ok", "unlinked_detections": 4, "total_detections": 4}


def test_api_kms_requires_highway():
    with pytest.raises(HTTPException) as excinfo:
        api.kms_for_highway("  ")

    assert excinfo.value.status_code == 400
