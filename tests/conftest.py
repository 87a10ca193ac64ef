import pytest

from rulescope.utils import logging as rulescope_logging


@pytest.fixture(autouse=True)
def reset_logging():
    """Give every test a quiet, freshly configured global logger."""
    rulescope_logging.configure_logging(structured=False, level="WARNING")
    yield
    rulescope_logging.configure_logging(structured=False, level="WARNING")


@pytest.fixture
def demo_status():
    """Status payload of a three-stage rule: source -> decoder -> log sink."""
    return {
        "status": "running",
        "lastStartTimestamp": 1700000000000,
        "source_demo_0_records_in_total": 120,
        "source_demo_0_records_out_total": 120,
        "source_demo_0_process_latency_us": 15,
        "source_demo_0_exceptions_total": 0,
        "source_demo_0_connection_status": 1,
        "source_demo_0_connection_last_connected_time": 1700000000500,
        "op_2_decoder_0_records_in_total": 100,
        "op_2_decoder_0_records_out_total": 98,
        "op_2_decoder_0_process_latency_us": 40,
        "op_2_decoder_0_buffer_length": 2,
        "op_2_decoder_0_exceptions_total": 2,
        "op_2_decoder_0_last_exception": "decode error: invalid json",
        "op_2_decoder_0_last_exception_time": 1700000001000,
        "sink_log_0_records_in_total": 100,
        "sink_log_0_records_out_total": 97,
        "sink_log_0_process_latency_us": 25,
    }


@pytest.fixture
def demo_topology():
    return {"sources": ["demo"], "edges": {"demo": ["decoder"], "decoder": ["log"]}}
