"""Layered layout for topology graphs.

Nodes are ranked breadth-first from the declared sources: a node's layer is
the round in which it is first discovered. The loop is bounded by
`LayoutConfig.max_iterations` and any node still unplaced afterwards (cycles
not reachable from a source, disconnected nodes) goes into one extra layer,
so every node always receives a position.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from rulescope.config import LayoutConfig, Role
from rulescope.graph import GraphEdge, TopologyGraph
from rulescope.utils.logging import get_logger


@dataclass(frozen=True)
class LayeredPosition:
    """Layer rank, in-layer ordinal and pixel coordinates of one node."""

    layer: int
    index: int
    x: float
    y: float

    def to_dict(self) -> Dict[str, Any]:
        return {"layer": self.layer, "index": self.index, "x": self.x, "y": self.y}


@dataclass(frozen=True)
class PositionedNode:
    """A topology node with its role and layout position."""

    id: str
    role: Role
    position: LayeredPosition


class LayeredLayoutEngine:
    """Assigns every node a layer, an ordinal and pixel coordinates.

    Example:
        ```python
        engine = LayeredLayoutEngine()
        positions = engine.layout_graph(graph)
        positions["decoder"].layer  # 1
        ```
    """

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()

    def layers(
        self,
        nodes: Iterable[str],
        edges: Iterable[GraphEdge],
        sources: Sequence[str],
    ) -> List[List[str]]:
        """Group nodes into layers in discovery order.

        Args:
            nodes: Every node of the graph, in insertion order
            edges: Directed edges
            sources: Declared sources, forming layer 0

        Returns:
            List of layers; each node appears in exactly one layer
        """
        node_order = list(dict.fromkeys(nodes))
        node_set = set(node_order)

        successors: Dict[str, List[str]] = {}
        for edge in edges:
            successors.setdefault(edge.from_node, []).append(edge.to_node)

        layers: List[List[str]] = []
        visited = set()
        frontier = [name for name in dict.fromkeys(sources) if name in node_set]
        iterations = 0

        while frontier and iterations < self.config.max_iterations:
            layers.append(frontier)
            visited.update(frontier)

            queued = set()
            next_frontier: List[str] = []
            for name in frontier:
                for target in successors.get(name, []):
                    if target in visited or target in queued or target not in node_set:
                        continue
                    queued.add(target)
                    next_frontier.append(target)

            frontier = next_frontier
            iterations += 1

        if frontier:
            get_logger().warning(
                "Layout iteration bound reached",
                max_iterations=self.config.max_iterations,
                pending=len(frontier),
            )

        unvisited = [name for name in node_order if name not in visited]
        if unvisited:
            get_logger().warning(
                "Placing unreachable nodes in fallback layer",
                layer=len(layers),
                nodes=unvisited,
            )
            layers.append(unvisited)

        return layers

    def position(self, layer_index: int, index: int, layer_size: int) -> LayeredPosition:
        """Pixel coordinates of the `index`-th node of a layer of `layer_size` nodes."""
        cfg = self.config
        layer_width = layer_size * cfg.node_width + (layer_size - 1) * cfg.node_gap
        start_x = cfg.center_x - layer_width / 2
        return LayeredPosition(
            layer=layer_index,
            index=index,
            x=start_x + index * (cfg.node_width + cfg.node_gap),
            y=layer_index * cfg.layer_gap + cfg.base_offset,
        )

    def layout(
        self,
        nodes: Iterable[str],
        edges: Iterable[GraphEdge],
        sources: Sequence[str],
    ) -> Dict[str, LayeredPosition]:
        """Compute positions for every node.

        Returns:
            Mapping of node to position, ordered by layer then ordinal.
            Empty input gives an empty mapping.
        """
        positions: Dict[str, LayeredPosition] = {}
        layers = self.layers(nodes, edges, sources)
        for layer_index, layer in enumerate(layers):
            for index, name in enumerate(layer):
                positions[name] = self.position(layer_index, index, len(layer))

        get_logger().debug("Computed layout", nodes=len(positions), layers=len(layers))
        return positions

    def layout_graph(self, graph: TopologyGraph) -> Dict[str, LayeredPosition]:
        """Compute positions for a TopologyGraph."""
        return self.layout(graph.nodes, graph.edges, graph.sources)

    def positioned_nodes(self, graph: TopologyGraph) -> List[PositionedNode]:
        """Lay out a graph and pair each position with the node's role."""
        positions = self.layout_graph(graph)
        return [
            PositionedNode(id=name, role=graph.roles[name], position=position)
            for name, position in positions.items()
        ]

    def canvas_size(self, positions: Dict[str, LayeredPosition]) -> Dict[str, float]:
        """Bounding box of the laid-out nodes, for sizing the render surface."""
        if not positions:
            return {"min_x": 0, "min_y": 0, "width": 0, "height": 0}

        cfg = self.config
        min_x = min(p.x for p in positions.values())
        max_x = max(p.x for p in positions.values()) + cfg.node_width
        min_y = min(p.y for p in positions.values())
        max_y = max(p.y for p in positions.values()) + cfg.node_height
        return {"min_x": min_x, "min_y": min_y, "width": max_x - min_x, "height": max_y - min_y}


def layout_graph(graph: TopologyGraph, config: Optional[LayoutConfig] = None) -> Dict[str, LayeredPosition]:
    """Lay out a TopologyGraph with the given (or default) spacing."""
    return LayeredLayoutEngine(config).layout_graph(graph)
