from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import date, time

import pytest

from radar_sync.admin import cli
from radar_sync.cache.filters import FilterReader, km_sort_key, kms_cache_key
from radar_sync.cache.warmer import FilterCacheWarmer, warm_with_eviction
from radar_sync.config import settings
from radar_sync.exceptions import CacheWarmTimeout
from radar_sync.models import Detection, Location

TODAY = date(2025, 6, 6)


def _detection(plate, highway, km, plaza, direction, day=TODAY):
    return Detection(
        date=day, time=time(10), plate=plate, plaza=plaza, highway=highway, km=km, direction=direction
    )


@pytest.fixture
def executor():
    with ThreadPoolExecutor(max_workers=4) as pool:
        yield pool


def test_km_sort_key_orders_numerically():
    assert sorted(["145+200", "20", "3", "KM9", "sem km"], key=km_sort_key) == ["3", "KM9", "20", "145+200", "sem km"]


def test_warm_without_highways_stores_empty_metadata(session_factory, fake_cache, executor):
    warmer = FilterCacheWarmer(session_factory, fake_cache, executor, today=lambda: TODAY)

    report = warmer.warm()

    assert report.km_jobs == []
    assert fake_cache.values[settings.cache_filters_key] == {
        "highways": [],
        "plazas": [],
        "kms": [],
        "directions": [],
    }
    assert fake_cache.ttls[settings.cache_filters_key] == settings.cache_filters_ttl_seconds


def test_warm_computes_metadata_and_refreshes_each_highway(session_factory, fake_cache, executor):
    session = session_factory()
    session.add_all(
        [
            _detection("AAA0001", "SP-330", "145", "Praça Sul", "Sul"),
            _detection("AAA0002", "SP-330", "20", "Praça Sul", "Norte"),
            _detection("AAA0003", "SP-280", "7+500", "Praça Norte", "Norte"),
            _detection("OLD0001", "SP-999", "1", "Antiga", "Leste", day=date(2025, 1, 1)),
        ]
    )
    session.commit()
    session.close()
    warmer = FilterCacheWarmer(session_factory, fake_cache, executor, today=lambda: TODAY)

    report = warmer.warm()
    wait(report.km_jobs, timeout=10)

    assert report.metadata.highways == ["SP-280", "SP-330"]
    assert report.metadata.plazas == ["Praça Norte", "Praça Sul"]
    assert report.metadata.kms == ["7+500", "20", "145"]
    assert report.metadata.directions == ["Norte", "Sul"]
    assert len(report.km_jobs) == 2
    assert fake_cache.values[kms_cache_key("SP-330")] == ["20", "145"]
    assert fake_cache.values[kms_cache_key("SP-280")] == ["7+500"]


def test_warm_with_eviction_clears_cache_first(session_factory, fake_cache, executor):
    fake_cache.put("antigua", ["x"], 10)
    warmer = FilterCacheWarmer(session_factory, fake_cache, executor, today=lambda: TODAY)

    warm_with_eviction(warmer)

    assert fake_cache.evicted_all == 1
    assert "antigua" not in fake_cache.values
    assert settings.cache_filters_key in fake_cache.values


def test_filter_reader_serves_from_cache(session_factory, fake_cache):
    session = session_factory()
    session.add(Location(id=1, concessionaire="CART", plaza="Praça Sul", highway="SP-330", km="145"))
    session.commit()
    session.close()
    reader = FilterReader(session_factory, fake_cache)

    first = reader.list_locations()
    fake_cache.values[settings.cache_locations_key] = [{"id": 99, "plaza": "Cacheada"}]
    second = reader.list_locations()

    assert [loc.id for loc in first] == [1]
    assert [loc.plaza for loc in second] == ["Cacheada"]


def test_filter_reader_computes_kms_on_miss(session_factory, fake_cache):
    session = session_factory()
    session.add(_detection("AAA0001", "SP-330", "145", "Praça Sul", "Sul", day=date.today()))
    session.commit()
    session.close()

    kms = FilterReader(session_factory, fake_cache).get_kms_for_highway("SP-330")

    assert kms == ["145"]
    assert fake_cache.ttls[kms_cache_key("SP-330")] == settings.cache_kms_ttl_seconds


class StalledExecutor:
    """Executor cuyas tareas nunca llegan a ejecutarse."""

    def __init__(self):
        self.futures = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.futures.append(future)
        return future


def test_warm_timeout_raises_and_leaves_cache_untouched(session_factory, fake_cache):
    executor = StalledExecutor()
    warmer = FilterCacheWarmer(session_factory, fake_cache, executor, timeout_seconds=0.05, today=lambda: TODAY)

    with pytest.raises(CacheWarmTimeout):
        warmer.warm()

    assert len(executor.futures) == 4
    assert all(future.cancelled() for future in executor.futures)
    assert fake_cache.values == {}


def test_warm_cache_command_exits_with_error_on_timeout(monkeypatch, session_factory, fake_cache):
    warmer = FilterCacheWarmer(
        session_factory, fake_cache, StalledExecutor(), timeout_seconds=0.05, today=lambda: TODAY
    )
    monkeypatch.setattr(cli.RedisCacheStore, "from_settings", classmethod(lambda cls: fake_cache))
    monkeypatch.setattr(
        cli.FilterCacheWarmer, "from_settings", classmethod(lambda cls, factory, cache, executor: warmer)
    )

    assert cli.main(["warm-cache"]) == 1
