import os
import sys
import tempfile

# Asegura que el paquete radar_sync sea importable desde la raíz del repo durante los tests
ROOT_DIR = os.path.dirname(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# La configuración se lee al importar radar_sync: sin Postgres ni directorio real.
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("FTP_LOCAL_DIRECTORY", os.path.join(tempfile.gettempdir(), "radar-sync-tests"))

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from radar_sync.models import Base  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    # Fichero en lugar de memoria: varios hilos y sesiones comparten la misma BD.
    engine = create_engine(f"sqlite:///{tmp_path / 'radar.db'}", future=True)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


class FakeCache:
    """Caché en memoria con la misma interfaz que RedisCacheStore."""

    def __init__(self):
        self.values = {}
        self.ttls = {}
        self.evicted_all = 0

    def get(self, key):
        return self.values.get(key)

    def put(self, key, value, ttl_seconds):
        self.values[key] = value
        self.ttls[key] = ttl_seconds

    def evict(self, key):
        self.values.pop(key, None)

    def evict_all(self):
        self.values.clear()
        self.evicted_all += 1


@pytest.fixture
def fake_cache():
    return FakeCache()
