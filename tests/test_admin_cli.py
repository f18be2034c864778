from radar_sync.admin import cli
from radar_sync.exceptions import LinkageBatchError
from radar_sync.linkage.job import LinkageReport


class _Job:
    def __init__(self, outcome):
        self.outcome = outcome

    def run(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_link_once_prints_report(monkeypatch, capsys):
    monkeypatch.setattr(
        cli.LocationLinkageJob, "from_settings", classmethod(lambda cls, factory: _Job(LinkageReport(2, 10, 7)))
    )

    assert cli.main(["link-once"]) == 0
    assert "vinculadas=7" in capsys.readouterr().out


def test_service_error_returns_exit_code_one(monkeypatch):
    monkeypatch.setattr(
        cli.LocationLinkageJob,
        "from_settings",
        classmethod(lambda cls, factory: _Job(LinkageBatchError("lote roto"))),
    )

    assert cli.main(["link-once"]) == 1
