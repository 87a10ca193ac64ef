"""Join topology nodes with decoded node metrics.

Topology identifiers (`demo`, `decoder`) and metric prefixes
(`source_demo_0`, `op_2_decoder_0`) come from two naming schemes that only
partially overlap, so the join is a substring match restricted to the
metric marker of the node's role. This module is the only place that relies
on that convention.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from rulescope.config import Role
from rulescope.layout import LayeredPosition, PositionedNode
from rulescope.metrics import NodeMetric
from rulescope.utils.logging import get_logger


@dataclass
class AnnotatedNode:
    """Render-ready node: role, position and the correlated metric, if any."""

    id: str
    role: Role
    position: LayeredPosition
    metric: Optional[NodeMetric] = None

    @property
    def has_metrics(self) -> bool:
        return self.metric is not None

    @property
    def label(self) -> str:
        """Display label: the metric's display name, else the raw identifier."""
        return self.metric.display_name if self.metric is not None else self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "label": self.label,
            "position": self.position.to_dict(),
            "metric": self.metric.to_dict() if self.metric is not None else None,
        }


class MetricsCorrelator:
    """Attaches the first matching NodeMetric to each positioned node."""

    @staticmethod
    def match(node_id: str, role: Role, metrics: Sequence[NodeMetric]) -> Optional[NodeMetric]:
        """Find the metric of one topology node.

        Args:
            node_id: Topology identifier
            role: Structural role of the node
            metrics: Decoded metrics, in decoder order

        Returns:
            First metric whose id starts with the role's marker and contains
            node_id, or None
        """
        marker = Role(role).metric_prefix
        for metric in metrics:
            if metric.id.startswith(marker) and node_id in metric.id:
                return metric
        return None

    def correlate(
        self,
        positioned_nodes: Iterable[PositionedNode],
        metrics: Iterable[NodeMetric],
    ) -> List[AnnotatedNode]:
        """Annotate positioned nodes with their metrics.

        Nodes without a match keep `metric=None`, which is distinct from a
        metric whose counters are all zero.
        """
        metrics = list(metrics)
        annotated = [
            AnnotatedNode(
                id=node.id,
                role=node.role,
                position=node.position,
                metric=self.match(node.id, node.role, metrics),
            )
            for node in positioned_nodes
        ]

        get_logger().debug(
            "Correlated topology with metrics",
            nodes=len(annotated),
            matched=sum(1 for node in annotated if node.has_metrics),
        )
        return annotated


def correlate(positioned_nodes: Iterable[PositionedNode], metrics: Iterable[NodeMetric]) -> List[AnnotatedNode]:
    """Correlate with a default MetricsCorrelator."""
    return MetricsCorrelator().correlate(positioned_nodes, metrics)


def unmatched_metrics(annotated: Iterable[AnnotatedNode], metrics: Iterable[NodeMetric]) -> List[NodeMetric]:
    """Metrics no annotated node claimed, in decoder order."""
    claimed = {node.metric.id for node in annotated if node.metric is not None}
    return [metric for metric in metrics if metric.id not in claimed]
