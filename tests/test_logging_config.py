"""Tests for configure_logging."""

import json

import pytest
import structlog

from stephie.logging_config import configure_logging


@pytest.fixture(autouse=True)
def restore_structlog():
    config = structlog.get_config()
    yield
    structlog.configure(**config)


def test_json_output_goes_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(level="INFO", json_output=True)

    structlog.get_logger().info("Metadata sync complete", resources=3)

    captured = capsys.readouterr()
    assert captured.out == ""
    line = json.loads(captured.err.strip().splitlines()[-1])
    assert line["event"] == "Metadata sync complete"
    assert line["resources"] == 3
    assert line["level"] == "info"


def test_level_filters_debug(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(level="WARNING", json_output=True)

    structlog.get_logger().info("hidden")
    structlog.get_logger().warning("shown")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "shown" in err
