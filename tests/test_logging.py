import json
import logging

from rulescope.graph import build_graph
from rulescope.metrics import decode_metrics
from rulescope.utils.logging import StructuredLogger, configure_logging, get_logger


def test_kwargs_appended_as_context(caplog):
    """Test that keyword context is rendered as key=value pairs."""
    logger = StructuredLogger(structured=False, level="INFO")
    logger.logger.propagate = True

    with caplog.at_level(logging.INFO, logger="rulescope"):
        logger.info("Topology view built", nodes=3, metrics=3)

    assert "Topology view built (nodes=3, metrics=3)" in caplog.text


def test_level_filtering(caplog):
    """Test that messages below the configured level are dropped."""
    logger = StructuredLogger(structured=False, level="WARNING")
    logger.logger.propagate = True

    with caplog.at_level(logging.DEBUG, logger="rulescope"):
        logger.debug("hidden")
        logger.warning("shown")

    assert "hidden" not in caplog.text
    assert "[WARN] shown" in caplog.text


def test_json_output(capsys):
    """Test structured JSON lines."""
    logger = StructuredLogger(structured=True)
    logger.info("Decoded node metrics", nodes=2)

    entry = json.loads(capsys.readouterr().out.strip())
    assert entry["level"] == "INFO"
    assert entry["message"] == "Decoded node metrics"
    assert entry["nodes"] == 2
    assert "timestamp" in entry


def test_configure_logging_replaces_global():
    """Test that components pick up the reconfigured logger."""
    configured = configure_logging(structured=True, level="DEBUG")
    assert get_logger() is configured


def test_components_log_debug(capsys):
    """Test that engine components emit debug context."""
    configure_logging(structured=True, level="DEBUG")

    decode_metrics({"source_demo_0_records_in_total": 1})
    build_graph(["demo"], {})

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    messages = [line["message"] for line in lines]
    assert "Decoded node metrics" in messages
    assert "Built topology graph" in messages
