from datetime import date, time

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from radar_sync.exceptions import LinkageBatchError
from radar_sync.linkage.job import LocationLinkageJob, LocationMatcher, PendingDetection
from radar_sync.models import Detection, Location


def _detection(plate, highway, km, plaza="", location_id=None):
    return Detection(
        date=date(2025, 6, 6),
        time=time(14, 30),
        plate=plate,
        plaza=plaza,
        highway=highway,
        km=km,
        direction="Sul",
        location_id=location_id,
    )


def _seed(session_factory, detections, locations):
    session = session_factory()
    session.add_all(locations)
    session.flush()
    session.add_all(detections)
    session.commit()
    session.close()


def _location_ids(session_factory):
    session = session_factory()
    rows = session.execute(select(Detection.plate, Detection.location_id).order_by(Detection.plate)).all()
    session.close()
    return dict(rows)


def test_matcher_prefers_highway_km_over_plaza():
    matcher = LocationMatcher(
        [
            Location(id=1, plaza="Praça Sul", highway="SP 330", km="145"),
            Location(id=2, plaza="Praça Norte", highway="SP-280", km="20"),
        ]
    )

    assert matcher.match(PendingDetection(10, "sp-330", "145+200", "Praça Norte")) == 1
    assert matcher.match(PendingDetection(11, "SP-999", "1", " praça norte ")) == 2
    assert matcher.match(PendingDetection(12, "SP-999", "1", "Desconocida")) is None


def test_run_drains_backlog_in_batches(session_factory):
    detections = [_detection(f"AAA{i:04d}", "SP-330", "145+200") for i in range(6)]
    detections.append(_detection("ZZZ0001", "SP-999", "1"))
    _seed(session_factory, detections, [Location(id=1, plaza="Praça Sul", highway="SP-330", km="145")])

    pauses = []
    job = LocationLinkageJob(session_factory, batch_size=2, pause_seconds=0.5, sleep=pauses.append)

    report = job.run()

    assert report.linked == 6
    assert report.scanned == 7
    assert report.batches == 4
    assert pauses == [0.5, 0.5, 0.5]
    ids = _location_ids(session_factory)
    assert ids.pop("ZZZ0001") is None
    assert set(ids.values()) == {1}


def test_run_never_overwrites_existing_link(session_factory):
    _seed(
        session_factory,
        [_detection("AAA0001", "SP-330", "145", location_id=2), _detection("BBB0002", "SP-330", "145")],
        [
            Location(id=1, plaza="Praça Sul", highway="SP-330", km="145"),
            Location(id=2, plaza="Praça Norte", highway="SP-280", km="20"),
        ],
    )
    job = LocationLinkageJob(session_factory, batch_size=10, sleep=lambda _: None)

    first = job.run()
    second = job.run()

    assert first.linked == 1
    assert second.linked == 0
    assert second.scanned == 0
    assert _location_ids(session_factory) == {"AAA0001": 2, "BBB0002": 1}


def test_run_stops_at_max_iterations(session_factory):
    detections = [_detection(f"AAA{i:04d}", "SP-330", "145") for i in range(6)]
    _seed(session_factory, detections, [Location(id=1, highway="SP-330", km="145")])
    job = LocationLinkageJob(session_factory, batch_size=2, max_iterations=2, sleep=lambda _: None)

    report = job.run()

    assert report.batches == 2
    assert report.linked == 4


def test_run_without_locations_is_a_noop(session_factory):
    _seed(session_factory, [_detection("AAA0001", "SP-330", "145")], [])

    report = LocationLinkageJob(session_factory, sleep=lambda _: None).run()

    assert report.batches == 0
    assert _location_ids(session_factory) == {"AAA0001": None}


def test_failed_update_raises_and_leaves_backlog_for_next_run(session_factory, monkeypatch):
    _seed(
        session_factory,
        [_detection("AAA0001", "SP-330", "145"), _detection("AAA0002", "SP-330", "145")],
        [Location(id=1, highway="SP-330", km="145")],
    )
    job = LocationLinkageJob(session_factory, batch_size=10, sleep=lambda _: None)

    def locked_database(session, matches):
        raise OperationalError("UPDATE detections", {}, Exception("database is locked"))

    monkeypatch.setattr(job, "_apply_batch", locked_database)

    with pytest.raises(LinkageBatchError):
        job.run()

    assert _location_ids(session_factory) == {"AAA0001": None, "AAA0002": None}

    report = LocationLinkageJob(session_factory, batch_size=10, sleep=lambda _: None).run()

    assert report.linked == 2
    assert _location_ids(session_factory) == {"AAA0001": 1, "AAA0002": 1}
