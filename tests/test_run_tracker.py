import argparse
import json

import pytest

import run_tracker
from odds_tracker.core.status_reporter import StatusReporter

from conftest import InMemoryPositionStore, FakeSession, make_gamma, make_position, outcome_prices


@pytest.fixture
def quiet_logging(monkeypatch):
    monkeypatch.setattr(run_tracker, "setup_logging", lambda **kwargs: None)


def test_status_command_prints_status_file(tmp_path, monkeypatch, capsys, quiet_logging):
    status_file = tmp_path / "tracker_state.json"
    status_file.write_text(json.dumps({"isActive": True, "updatedCount": 15, "lastOutcome": "COMPLETED"}))
    monkeypatch.setenv("TRACKER_STATUS_FILE", str(status_file))

    run_tracker.main(argparse.Namespace(command="status", watch=False, json_logs=False))

    out = capsys.readouterr().out
    assert "COMPLETED" in out
    assert "15" in out


def test_once_command_prints_cycle_stats(tmp_path, monkeypatch, capsys, quiet_logging):
    def fake_build(config):
        store = InMemoryPositionStore([make_position("p1", "m1"), make_position("p2", "m2")])
        gamma = make_gamma(FakeSession(default=outcome_prices(0.7, 0.3)))
        return run_tracker.OddsTracker(store, gamma=gamma, reporter=StatusReporter())

    monkeypatch.setattr(run_tracker, "build_tracker", fake_build)

    run_tracker.main(argparse.Namespace(command="once", json_logs=False))

    stats = json.loads(capsys.readouterr().out)
    assert stats["updatedCount"] == 2
    assert stats["uniqueMarkets"] == 2
    assert stats["lastOutcome"] == "COMPLETED"
