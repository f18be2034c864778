from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time

from radar_sync.exceptions import PublishError
from radar_sync.models import Detection
from radar_sync.publisher.publisher import DetectionPublisher, format_message, source_from_routing_key

NOW = datetime(2025, 6, 6, 15, 0, 0)


class RecordingChannel:
    def __init__(self, failing_plates=()):
        self.failing_plates = set(failing_plates)
        self.sent = []

    def publish(self, destination, payload):
        if payload.split("|")[3] in self.failing_plates:
            raise PublishError("broker no disponible")
        self.sent.append((destination, payload))

    def close(self):
        pass


def _detection(plate, hour, minute=0, microsecond=0, plaza="Praça Sul"):
    return Detection(
        date=date(2025, 6, 6),
        time=time(hour, minute, 0, microsecond),
        plate=plate,
        plaza=plaza,
        highway="SP-330",
        km="145+200",
        direction="Sul",
    )


def _publisher(channel, executor=None):
    return DetectionPublisher(
        channel,
        destination="radars-cart",
        routing_key="radars.cart",
        freshness_hours=5,
        executor=executor,
        clock=lambda: NOW,
    )


def test_source_from_routing_key():
    assert source_from_routing_key("radars.cart") == "CART"
    assert source_from_routing_key("radars") == "RADARS"


def test_format_message():
    message = format_message("CART", _detection("ABC1234", 14, 30, 120000))

    assert message == "CART|2025-06-06|14:30:00.120|ABC1234|Praça Sul|SP-330|145+200|Sul"


def test_stale_detection_is_not_published():
    channel = RecordingChannel()
    publisher = _publisher(channel)

    sent = publisher.publish_batch([_detection("ABC1234", 14, 30), _detection("OLD0001", 9, 0)])

    assert sent == 1
    assert channel.sent == [("radars-cart", "CART|2025-06-06|14:30:00|ABC1234|Praça Sul|SP-330|145+200|Sul")]


def test_failed_message_does_not_stop_the_batch(caplog):
    channel = RecordingChannel(failing_plates={"BAD0001"})
    publisher = _publisher(channel)

    sent = publisher.publish_batch(
        [_detection("AAA0001", 14), _detection("BAD0001", 14), _detection("CCC0003", 14)]
    )

    assert sent == 2
    assert [payload.split("|")[3] for _, payload in channel.sent] == ["AAA0001", "CCC0003"]
    assert any("BAD0001" in record.getMessage() for record in caplog.records)


def test_submit_runs_on_executor():
    channel = RecordingChannel()
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = _publisher(channel, executor).submit([_detection("ABC1234", 14)])
        assert future.result(timeout=5) == 1

    assert len(channel.sent) == 1


def test_submit_empty_batch_returns_none():
    assert _publisher(RecordingChannel()).submit([]) is None
