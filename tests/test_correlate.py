"""Tests for topology/metrics correlation."""

from rulescope.config import Role
from rulescope.correlate import MetricsCorrelator, correlate, unmatched_metrics
from rulescope.graph import build_graph, build_graph_from_payload
from rulescope.layout import LayeredLayoutEngine
from rulescope.metrics import decode_metrics


def _positioned(topology):
    return LayeredLayoutEngine().positioned_nodes(build_graph_from_payload(topology))


class TestCorrelation:
    """Test the substring join between topology ids and metric prefixes."""

    def test_demo_rule_fully_matched(self, demo_status, demo_topology):
        nodes = correlate(_positioned(demo_topology), decode_metrics(demo_status))

        assert [(n.id, n.metric.id) for n in nodes] == [
            ("demo", "source_demo_0"),
            ("decoder", "op_2_decoder_0"),
            ("log", "sink_log_0"),
        ]
        assert all(n.has_metrics for n in nodes)

    def test_role_marker_restricts_candidates(self):
        """An operator named like a source only matches op_ metrics."""
        metrics = decode_metrics(
            {
                "source_demo_0_records_in_total": 1,
                "op_demo_filter_0_records_in_total": 1,
            }
        )
        graph = build_graph(["s"], {"s": ["demo"], "demo": ["k"]})
        nodes = {n.id: n for n in correlate(LayeredLayoutEngine().positioned_nodes(graph), metrics)}

        assert nodes["demo"].role == Role.OPERATOR
        assert nodes["demo"].metric.id == "op_demo_filter_0"

    def test_first_match_in_decoder_order_wins(self):
        metrics = decode_metrics(
            {
                "op_2_filter_0_records_in_total": 1,
                "op_3_filter_1_records_in_total": 1,
            }
        )
        assert MetricsCorrelator.match("filter", Role.OPERATOR, metrics).id == "op_2_filter_0"

    def test_no_match_leaves_metric_absent(self):
        """A node without a metric is not an error and differs from zero counters."""
        metrics = decode_metrics({"op_filter_5_records_in_total": 0})
        graph = build_graph(["demo"], {"demo": ["project"], "project": ["log"]})

        nodes = {n.id: n for n in correlate(LayeredLayoutEngine().positioned_nodes(graph), metrics)}

        assert nodes["project"].metric is None
        assert nodes["project"].has_metrics is False
        assert nodes["project"].label == "project"
        assert nodes["demo"].metric is None

    def test_partial_mismatch_does_not_crash(self):
        """Heuristic join picks the substring match even when names differ."""
        metrics = decode_metrics({"op_filter_5_records_in_total": 3})
        graph = build_graph(["src"], {"src": ["filt"], "filt": ["out"]})

        nodes = {n.id: n for n in correlate(LayeredLayoutEngine().positioned_nodes(graph), metrics)}

        assert nodes["filt"].metric.id == "op_filter_5"
        assert nodes["filt"].metric.records_in == 3

    def test_matched_zero_metric_is_present(self):
        metrics = decode_metrics({"sink_log_0_records_in_total": 0})
        graph = build_graph(["s"], {"s": ["log"]})
        nodes = {n.id: n for n in correlate(LayeredLayoutEngine().positioned_nodes(graph), metrics)}

        assert nodes["log"].metric is not None
        assert nodes["log"].metric.records_in == 0

    def test_deterministic(self, demo_status, demo_topology):
        positioned = _positioned(demo_topology)
        metrics = decode_metrics(demo_status)
        correlator = MetricsCorrelator()

        assert correlator.correlate(positioned, metrics) == correlator.correlate(positioned, metrics)

    def test_output_follows_layout_order(self):
        graph = build_graph(["s"], {"s": ["b", "a"]})
        nodes = correlate(LayeredLayoutEngine().positioned_nodes(graph), [])
        assert [n.id for n in nodes] == ["s", "b", "a"]

    def test_unmatched_metrics(self, demo_topology):
        metrics = decode_metrics(
            {
                "source_demo_0_records_in_total": 1,
                "op_window_0_records_in_total": 1,
            }
        )
        nodes = correlate(_positioned(demo_topology), metrics)
        assert [m.id for m in unmatched_metrics(nodes, metrics)] == ["op_window_0"]


class TestAnnotatedNode:
    def test_label_uses_display_name(self, demo_status, demo_topology):
        nodes = correlate(_positioned(demo_topology), decode_metrics(demo_status))
        assert [n.label for n in nodes] == ["demo", "decoder", "log"]

    def test_to_dict(self, demo_status, demo_topology):
        data = correlate(_positioned(demo_topology), decode_metrics(demo_status))[1].to_dict()

        assert data["id"] == "decoder"
        assert data["role"] == "operator"
        assert data["position"] == {"layer": 1, "index": 0, "x": -90, "y": 250}
        assert data["metric"]["exceptions_total"] == 2

    def test_to_dict_without_metric(self):
        graph = build_graph(["s"], {})
        data = correlate(LayeredLayoutEngine().positioned_nodes(graph), [])[0].to_dict()
        assert data["metric"] is None
