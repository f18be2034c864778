from datetime import date, time

from radar_sync.ingest.location_cache import LocationCache
from radar_sync.models import Base, Detection, Location


def _detection(plaza):
    return Detection(
        date=date(2025, 6, 6),
        time=time(14, 30),
        plate="ABC1234",
        plaza=plaza,
        highway="SP-330",
        km="145",
        direction="Sul",
    )


def test_resolve_matches_plaza_case_and_padding_insensitive(session_factory):
    session = session_factory()
    session.add(Location(id=5, plaza="Praça Sul", highway="SP-330", km="145"))
    session.commit()

    cache = LocationCache.load(session)
    detections = [_detection(" praça sul "), _detection("Outra Praça"), _detection("")]

    linked = cache.resolve(detections)

    assert linked == 1
    assert detections[0].location_id == 5
    assert detections[1].location_id is None
    assert detections[2].location_id is None
    session.close()


def test_lowest_location_id_wins_on_duplicate_plaza():
    cache = LocationCache.from_locations(
        [Location(id=9, plaza="PRAÇA SUL"), Location(id=3, plaza="praça sul"), Location(id=4, plaza=None)]
    )

    assert len(cache) == 1
    assert cache.lookup("Praça Sul") == 3


def test_load_failure_returns_empty_cache(engine, session_factory):
    Base.metadata.drop_all(engine)
    session = session_factory()

    cache = LocationCache.load(session)

    assert len(cache) == 0
    assert cache.lookup("Praça Sul") is None
    session.close()
