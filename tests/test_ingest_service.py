from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from radar_sync.exceptions import PersistenceError
from radar_sync.ingest import service as service_module
from radar_sync.ingest.ftp_sync import RemoteFileSynchronizer
from radar_sync.ingest.service import IngestionService
from radar_sync.models import Detection, Highway, HighwayKm, Location

FILE_CONTENT = "\n".join(
    [
        "Data_Transação Hora Placa Praca Rodovia KM",
        "---------- -------- -------",
        "2025-06-06 14:30:00.120 ABC1234 Praça Sul Sul SP-330 KM145",
        "2025-06-06 14:31:00 XYZ9876 Outra Norte SP-280 KM20+500",
        "linea rota",
        "(2 rows affected)",
    ]
).encode("ISO-8859-1")


class FakeEndpoint:
    def __init__(self, files):
        self.files = files

    def connect(self):
        pass

    def list_names(self):
        return list(self.files)

    def fetch(self, name, target):
        target.write(self.files[name])

    def close(self):
        pass


class RecordingPublisher:
    def __init__(self):
        self.batches = []

    def submit(self, detections):
        self.batches.append(list(detections))


def _synchronizer(directory):
    endpoint = FakeEndpoint({"radares_06-06-2025.txt": FILE_CONTENT})
    return RemoteFileSynchronizer(lambda: endpoint, directory, today=lambda: date(2025, 6, 6))


def test_run_cycle_persists_links_and_publishes(tmp_path, session_factory):
    session = session_factory()
    session.add(Location(id=7, plaza="PRAÇA SUL", highway="SP-330", km="145"))
    session.commit()
    session.close()

    publisher = RecordingPublisher()
    service = IngestionService(session_factory, _synchronizer(tmp_path / "ftp"), publisher)

    report = service.run_cycle()

    assert report.files == 1
    assert report.detections == 2
    assert report.linked == 1
    assert report.warned_lines == 1
    assert report.saved == 2

    session = session_factory()
    stored = session.scalars(select(Detection).order_by(Detection.plate)).all()
    assert [(d.plate, d.location_id) for d in stored] == [("ABC1234", 7), ("XYZ9876", None)]
    session.close()

    assert len(publisher.batches) == 1
    assert {d.plate for d in publisher.batches[0]} == {"ABC1234", "XYZ9876"}


def test_run_cycle_without_new_files_does_nothing(tmp_path, session_factory):
    publisher = RecordingPublisher()
    service = IngestionService(session_factory, _synchronizer(tmp_path / "ftp"), publisher)
    service.run_cycle()

    report = service.run_cycle()

    assert report.files == 0
    assert report.saved == 0
    assert len(publisher.batches) == 1


def test_persistence_failure_discards_downloads_for_reprocessing(tmp_path):
    # BD sin tablas: la caché queda vacía y el guardado del lote falla.
    engine = create_engine(f"sqlite:///{tmp_path / 'vacia.db'}", future=True)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    publisher = RecordingPublisher()
    ftp_dir = tmp_path / "ftp"
    service = IngestionService(factory, _synchronizer(ftp_dir), publisher)

    with pytest.raises(PersistenceError):
        service.run_cycle()

    assert not (ftp_dir / "radares_06-06-2025.txt").exists()
    assert publisher.batches == []
    engine.dispose()


def test_unreadable_file_is_removed_for_reprocessing(tmp_path, session_factory, monkeypatch):
    def failing_parse(path):
        raise OSError("disco no disponible")

    monkeypatch.setattr(service_module, "parse_file", failing_parse)
    ftp_dir = tmp_path / "ftp"
    service = IngestionService(session_factory, _synchronizer(ftp_dir), RecordingPublisher())

    report = service.run_cycle()

    assert report.files == 1
    assert report.saved == 0
    assert not (ftp_dir / "radares_06-06-2025.txt").exists()


def test_run_cycle_registers_new_highways_and_kms(tmp_path, session_factory):
    service = IngestionService(session_factory, _synchronizer(tmp_path / "ftp"), RecordingPublisher())

    service.run_cycle()

    session = session_factory()
    names = session.scalars(select(Highway.name).order_by(Highway.name)).all()
    sp330_kms = session.scalars(
        select(HighwayKm.value).join(Highway).where(Highway.name == "SP-330")
    ).all()
    session.close()
    assert names == ["SP-280", "SP-330"]
    assert sp330_kms == ["145"]
