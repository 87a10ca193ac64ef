"""Topology graph builder and role classification."""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Sequence, Set, Tuple

from rulescope.config import Role
from rulescope.exceptions import TopologyShapeError
from rulescope.utils.logging import get_logger


@dataclass(frozen=True)
class GraphEdge:
    """Directed edge between two topology nodes."""

    from_node: str
    to_node: str

    def to_dict(self) -> Dict[str, Any]:
        return {"from": self.from_node, "to": self.to_node}


@dataclass
class TopologyGraph:
    """Nodes, edges and roles reconstructed from a rule topology."""

    sources: List[str]
    nodes: List[str]
    edges: List[GraphEdge]
    roles: Dict[str, Role]
    adjacency_list: Dict[str, List[str]] = field(default_factory=dict, repr=False)
    reverse_adjacency_list: Dict[str, List[str]] = field(default_factory=dict, repr=False)

    @property
    def node_set(self) -> FrozenSet[str]:
        return frozenset(self.nodes)

    def role_of(self, node_name: str) -> Role:
        if node_name not in self.roles:
            raise ValueError(f"Node '{node_name}' not found")
        return self.roles[node_name]

    def nodes_by_role(self, role: Role) -> List[str]:
        """Get nodes of one role in insertion order."""
        role = Role(role)
        return [name for name in self.nodes if self.roles[name] == role]

    def downstream(self, node_name: str) -> List[str]:
        """Direct successors of a node, duplicates removed, edge order kept."""
        return list(dict.fromkeys(self.adjacency_list.get(node_name, [])))

    def upstream(self, node_name: str) -> List[str]:
        """Direct predecessors of a node, duplicates removed, edge order kept."""
        return list(dict.fromkeys(self.reverse_adjacency_list.get(node_name, [])))

    def get_dependents(self, node_name: str) -> Set[str]:
        """Get all nodes reachable from a node (direct and transitive).

        Args:
            node_name: Name of node

        Returns:
            Set of reachable node names; contains node_name itself only if
            it sits on a cycle
        """
        if node_name not in self.roles:
            raise ValueError(f"Node '{node_name}' not found")

        dependents: Set[str] = set()
        queue = deque([node_name])

        while queue:
            current = queue.popleft()
            for dependent in self.adjacency_list.get(current, []):
                if dependent not in dependents:
                    dependents.add(dependent)
                    queue.append(dependent)

        return dependents

    def get_isolated_nodes(self) -> List[str]:
        """Nodes with neither incoming nor outgoing edges."""
        return [
            name
            for name in self.nodes
            if not self.adjacency_list.get(name) and not self.reverse_adjacency_list.get(name)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": list(self.sources),
            "nodes": [{"id": name, "role": self.roles[name].value} for name in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    def visualize(self) -> str:
        """Generate a text visualization of the graph.

        Returns:
            String representation of the graph, one line per node
        """
        lines = ["Topology:", ""]
        for role in Role:
            members = self.nodes_by_role(role)
            if not members:
                continue
            lines.append(f"{role.value.capitalize()}s:")
            for name in members:
                targets = self.downstream(name)
                arrow = f" -> {', '.join(targets)}" if targets else ""
                lines.append(f"  - {name}{arrow}")
            lines.append("")
        return "\n".join(lines)


def _check_identifier(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise TopologyShapeError(field_name, "string node identifier", value)
    return value


def parse_topology(payload: Mapping[str, Any]) -> Tuple[List[str], Dict[str, List[str]]]:
    """Extract (sources, edges) from a raw topology payload.

    Missing or null keys are read as empty; anything else that is not the
    `{sources: [...], edges: {node: [...]}}` shape raises.

    Raises:
        TopologyShapeError: If the payload or one of its fields has the wrong shape
    """
    if not isinstance(payload, Mapping):
        raise TopologyShapeError("topology", "mapping with 'sources' and 'edges'", payload)

    sources = payload.get("sources") or []
    edges = payload.get("edges") or {}
    if not isinstance(sources, (list, tuple)):
        raise TopologyShapeError("sources", "list of node identifiers", sources)
    if not isinstance(edges, Mapping):
        raise TopologyShapeError("edges", "mapping of node to list of nodes", edges)
    return list(sources), {key: value for key, value in edges.items()}


class GraphBuilder:
    """Builds a TopologyGraph from declared sources and an adjacency mapping.

    Roles are purely structural: declared sources are sources, nodes that
    only ever appear as edge targets are sinks, everything else (including
    isolated nodes) is an operator.
    """

    def build(self, sources: Sequence[str], edges: Mapping[str, Sequence[str]]) -> TopologyGraph:
        """Build the graph.

        Args:
            sources: Declared source node identifiers
            edges: Mapping of node to the list of its downstream nodes

        Returns:
            TopologyGraph with every referenced node exactly once

        Raises:
            TopologyShapeError: If sources is not a list or edges is not a mapping
        """
        if not isinstance(sources, (list, tuple)):
            raise TopologyShapeError("sources", "list of node identifiers", sources)
        if not isinstance(edges, Mapping):
            raise TopologyShapeError("edges", "mapping of node to list of nodes", edges)

        # dict keys keep insertion order and give O(1) membership
        nodes: Dict[str, None] = {}
        for source in sources:
            nodes.setdefault(_check_identifier(source, "sources[]"), None)

        edge_list: List[GraphEdge] = []
        adjacency_list: Dict[str, List[str]] = defaultdict(list)
        reverse_adjacency_list: Dict[str, List[str]] = defaultdict(list)
        targets: Set[str] = set()

        for from_node, to_nodes in edges.items():
            _check_identifier(from_node, "edges")
            if to_nodes is None:
                to_nodes = []
            if not isinstance(to_nodes, (list, tuple)):
                raise TopologyShapeError(f"edges[{from_node}]", "list of node identifiers", to_nodes)

            nodes.setdefault(from_node, None)
            for to_node in to_nodes:
                _check_identifier(to_node, f"edges[{from_node}][]")
                nodes.setdefault(to_node, None)
                edge_list.append(GraphEdge(from_node, to_node))
                adjacency_list[from_node].append(to_node)
                reverse_adjacency_list[to_node].append(from_node)
                targets.add(to_node)

        roles = self.classify(nodes, sources, edges, targets)

        graph = TopologyGraph(
            sources=list(dict.fromkeys(sources)),
            nodes=list(nodes),
            edges=edge_list,
            roles=roles,
            adjacency_list=dict(adjacency_list),
            reverse_adjacency_list=dict(reverse_adjacency_list),
        )

        get_logger().debug(
            "Built topology graph",
            nodes=len(graph.nodes),
            edges=len(edge_list),
            sources=len(graph.nodes_by_role(Role.SOURCE)),
            sinks=len(graph.nodes_by_role(Role.SINK)),
        )
        return graph

    @staticmethod
    def classify(
        nodes: Iterable[str],
        sources: Iterable[str],
        edges: Mapping[str, Any],
        targets: Set[str],
    ) -> Dict[str, Role]:
        """Assign exactly one role to every node."""
        source_set = set(sources)
        roles: Dict[str, Role] = {}
        for name in nodes:
            if name in source_set:
                roles[name] = Role.SOURCE
            elif name in targets and name not in edges:
                roles[name] = Role.SINK
            else:
                roles[name] = Role.OPERATOR
        return roles


def build_graph(sources: Sequence[str], edges: Mapping[str, Sequence[str]]) -> TopologyGraph:
    """Build a TopologyGraph with a default GraphBuilder."""
    return GraphBuilder().build(sources, edges)


def build_graph_from_payload(payload: Mapping[str, Any]) -> TopologyGraph:
    """Parse a raw `{sources, edges}` payload and build its graph."""
    sources, edges = parse_topology(payload)
    return GraphBuilder().build(sources, edges)
