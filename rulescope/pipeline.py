"""End-to-end view of a rule: metrics, topology, layout and correlation."""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from rulescope.config import EngineConfig, Role, load_config
from rulescope.correlate import AnnotatedNode, MetricsCorrelator, unmatched_metrics
from rulescope.graph import GraphBuilder, TopologyGraph, parse_topology
from rulescope.layout import LayeredLayoutEngine, LayeredPosition
from rulescope.metrics import MetricKeyDecoder, NodeMetric, RuleMetricsSummary, filter_by_role, summarize
from rulescope.utils.logging import configure_logging, get_logger


@dataclass
class TopologyViewResult:
    """Everything a topology screen renders for one rule."""

    metrics: List[NodeMetric]
    graph: TopologyGraph
    positions: Dict[str, LayeredPosition]
    nodes: List[AnnotatedNode]
    summary: RuleMetricsSummary

    @property
    def unmatched_metrics(self) -> List[NodeMetric]:
        return unmatched_metrics(self.nodes, self.metrics)

    def metrics_for_role(self, role: Role) -> List[NodeMetric]:
        return filter_by_role(self.metrics, role)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "metrics": [metric.to_dict() for metric in self.metrics],
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.graph.edges],
        }


class TopologyView:
    """Runs decode, build, layout and correlate over one pair of payloads.

    Holds configuration only; every call to `build` is independent.

    Example:
        ```python
        view = TopologyView()
        result = view.build(status_payload, topology_payload)
        for node in result.nodes:
            print(node.id, node.position.layer, node.label)
        ```
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.decoder = MetricKeyDecoder(self.config.metrics.anchor_suffix)
        self.builder = GraphBuilder()
        self.layout_engine = LayeredLayoutEngine(self.config.layout)
        self.correlator = MetricsCorrelator()

    @classmethod
    def from_yaml(cls, path: str, env: Optional[str] = None) -> "TopologyView":
        """Create a view from a YAML configuration file and apply its logging settings."""
        config = load_config(path, env=env)
        configure_logging(config.logging.structured, config.logging.level.value)
        return cls(config)

    def build(
        self,
        status_payload: Optional[Mapping[str, Any]],
        topology_payload: Optional[Mapping[str, Any]],
    ) -> TopologyViewResult:
        """Build the annotated graph of a rule.

        Args:
            status_payload: Flat metrics mapping; None when not fetched yet
            topology_payload: `{sources, edges}` mapping; None when not fetched yet

        Returns:
            TopologyViewResult

        Raises:
            TopologyShapeError: If the topology payload has the wrong shape
            MetricsShapeError: If the status payload is not a mapping
        """
        metrics = self.decoder.decode(status_payload or {})
        sources, edges = parse_topology(topology_payload or {})
        graph = self.builder.build(sources, edges)
        positioned = self.layout_engine.positioned_nodes(graph)
        nodes = self.correlator.correlate(positioned, metrics)

        result = TopologyViewResult(
            metrics=metrics,
            graph=graph,
            positions={node.id: node.position for node in positioned},
            nodes=nodes,
            summary=summarize(metrics),
        )

        get_logger().info(
            "Topology view built",
            nodes=len(nodes),
            metrics=len(metrics),
            unmatched=len(result.unmatched_metrics),
        )
        return result
