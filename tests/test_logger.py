from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
from rich.logging import RichHandler

from gcecloud.config import GCEConfig
from gcecloud.observability.logger import logger
from gcecloud.topology import on_shared_network, resolve_topology


class Capture(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def capture():
    handler = Capture()
    root = logging.getLogger("gcecloud")
    root.addHandler(handler)
    yield handler
    root.removeHandler(handler)


class TestFileSink:
    def test_writes_package_records(self, tmp_path: Path):
        path = tmp_path / "gce.log"
        handler_id = logger.add(str(path), level="WARNING")
        try:
            on_shared_network("123", "myproj")
        finally:
            logger.remove(handler_id)

        text = path.read_text()
        assert "WARNING" in text
        assert "gcecloud.topology:on_shared_network" in text
        assert "'123' vs 'myproj'" in text

    def test_level_filters_records(self, tmp_path: Path, metadata):
        path = tmp_path / "gce.log"
        handler_id = logger.add(str(path), level="WARNING")
        try:
            resolve_topology(GCEConfig(), metadata)
        finally:
            logger.remove(handler_id)

        assert "Resolved topology" not in path.read_text()

    def test_removed_sink_gets_nothing(self, tmp_path: Path):
        path = tmp_path / "gce.log"
        logger.remove(logger.add(str(path), level="DEBUG"))

        on_shared_network("123", "myproj")

        assert path.read_text() == ""


class TestConsoleSink:
    def test_stream_sink_uses_rich(self):
        handler_id = logger.add(sys.stderr, level="INFO")
        try:
            assert any(isinstance(h, RichHandler) for h in logging.getLogger("gcecloud").handlers)
        finally:
            logger.remove(handler_id)


class TestBoundRecords:
    def test_bound_extras_and_formatting(self, capture):
        on_shared_network("123", "myproj")

        record = capture.records[-1]
        assert record.levelno == logging.WARNING
        assert record.name == "gcecloud.topology"
        assert record.component == "topology"
        assert record.getMessage().endswith("'123' vs 'myproj'")

    def test_disable_silences_submodules(self, capture):
        logger.disable("gcecloud")
        try:
            on_shared_network("123", "myproj")
        finally:
            logger.enable("gcecloud")
        assert capture.records == []

        on_shared_network("123", "myproj")
        assert len(capture.records) == 1
