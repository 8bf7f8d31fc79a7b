from pathlib import Path

import pytest
from conftest import FakeCloudRegistry, FakeNodeRegistry

from fleetwarden.observability import LogConfig, _setup_logging, _teardown_logging
from fleetwarden.reconciler import Reconciler

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


def _failing_pass() -> None:
    registry = FakeCloudRegistry(error=RuntimeError("registry down"))
    Reconciler(registry, FakeNodeRegistry()).run_once()


class TestLogging:
    def test_file_handler_captures_library_records(self, tmp_path: Path):
        path = tmp_path / "logs" / "fleetwarden.log"
        ids = _setup_logging(LogConfig(file=str(path), console=False))
        try:
            _failing_pass()
        finally:
            _teardown_logging(ids)

        text = path.read_text()
        assert "WARNING" in text
        assert "Error listing managed clouds: registry down" in text
        assert "[component=reconciler]" in text

    def test_silent_after_teardown(self, tmp_path: Path):
        path = tmp_path / "fleetwarden.log"
        _teardown_logging(_setup_logging(LogConfig(file=str(path), console=False)))
        before = path.read_text() if path.exists() else ""

        _failing_pass()

        after = path.read_text() if path.exists() else ""
        assert after == before

    def test_console_only(self):
        ids = _setup_logging(LogConfig(file="", console=True))
        try:
            assert len(ids) == 1
        finally:
            _teardown_logging(ids)
