"""rulescope - Topology and metrics correlation for stream-processing rules."""

__version__ = "0.3.0"

from rulescope.config import EngineConfig, LayoutConfig, Role
from rulescope.correlate import AnnotatedNode, MetricsCorrelator, correlate
from rulescope.graph import GraphBuilder, GraphEdge, TopologyGraph, build_graph
from rulescope.layout import LayeredLayoutEngine, LayeredPosition, PositionedNode, layout_graph
from rulescope.metrics import MetricKeyDecoder, NodeMetric, decode_metrics

__all__ = [
    "__version__",
    "EngineConfig",
    "LayoutConfig",
    "Role",
    "MetricKeyDecoder",
    "NodeMetric",
    "decode_metrics",
    "GraphBuilder",
    "GraphEdge",
    "TopologyGraph",
    "build_graph",
    "LayeredLayoutEngine",
    "LayeredPosition",
    "PositionedNode",
    "layout_graph",
    "AnnotatedNode",
    "MetricsCorrelator",
    "correlate",
]


# Lazy import for the orchestration layer
def __getattr__(name):
    if name == "TopologyView":
        from rulescope.pipeline import TopologyView

        return TopologyView
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
