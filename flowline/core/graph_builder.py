"""Turns a workflow's raw node and edge lists into an executable graph."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..models.nodes import ENTRY_NODE_TYPES, NodeConfig, PassThroughConfig, parse_node_config
from .exceptions import NodeConfigurationError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class GraphNode:
    """A node ready for dispatch.

    ``config_error`` is set when the raw configuration could not be parsed;
    such a node fails with that message when it is executed.
    """
    id: str
    type: str
    name: str
    config: NodeConfig
    config_error: str = ""


@dataclass
class ExecutionGraph:
    """Node lookup, successor lists and the node traversal starts from."""
    node_index: Dict[str, GraphNode] = field(default_factory=dict)
    adjacency: Dict[str, List[str]] = field(default_factory=dict)
    entry_node_id: Optional[str] = None

    def successors(self, node_id: str) -> List[str]:
        return self.adjacency.get(node_id, [])


def _raw_config(raw_node: Mapping[str, Any]) -> Any:
    data = raw_node.get("data")
    if data is None:
        data = raw_node.get("config")
    return data


def _node_title(raw_node: Mapping[str, Any], config: Any) -> str:
    if isinstance(config, Mapping) and isinstance(config.get("title"), str) and config["title"]:
        return config["title"]
    title = raw_node.get("title")
    return title if isinstance(title, str) else ""


def build_node(node_id: str, node_type: str, raw_config: Any, name: str = "") -> GraphNode:
    """
    Build a single GraphNode, capturing configuration problems instead of raising.

    Used by the graph builder for every node and by dry-run for a lone node,
    so both go through the same parse path.
    """
    try:
        config = parse_node_config(node_type, raw_config)
        config_error = ""
    except NodeConfigurationError as e:
        logger.warning(f"Node '{node_id}' ({node_type}) has invalid configuration: {e.message}")
        config = PassThroughConfig()
        config_error = e.message
    return GraphNode(id=node_id, type=node_type, name=name, config=config, config_error=config_error)


def _edge_endpoint(edge: Mapping[str, Any], key: str, legacy_key: str) -> Optional[str]:
    value = edge.get(key)
    if value is None:
        value = edge.get(legacy_key)
    if isinstance(value, str) and value:
        return value
    return None


def build_graph(nodes: List[Any], edges: List[Any]) -> ExecutionGraph:
    """
    Build an ExecutionGraph from raw workflow nodes and edges.

    Malformed nodes (not a mapping, or without a string id) and edges without
    usable endpoints are skipped. Edges may point at nodes that do not exist;
    the executor skips those targets. Cycles are not detected.

    The entry node is the last node whose type is ``start`` or
    ``jira_webhook``; failing that, the first node in list order.

    Args:
        nodes: Raw node mappings, in editor order
        edges: Raw edge mappings

    Returns:
        ExecutionGraph for the executor
    """
    graph = ExecutionGraph()
    entry_node_id: Optional[str] = None
    first_node_id: Optional[str] = None

    for raw_node in nodes or []:
        if not isinstance(raw_node, Mapping):
            continue
        node_id = raw_node.get("id")
        if not isinstance(node_id, str) or not node_id:
            continue

        node_type = raw_node.get("type")
        node_type = node_type if isinstance(node_type, str) else ""
        raw_config = _raw_config(raw_node)

        graph.node_index[node_id] = build_node(node_id, node_type, raw_config, _node_title(raw_node, raw_config))

        if first_node_id is None:
            first_node_id = node_id
        if node_type in ENTRY_NODE_TYPES:
            entry_node_id = node_id

    for edge in edges or []:
        if not isinstance(edge, Mapping):
            continue
        source = _edge_endpoint(edge, "source", "sourceNodeID")
        target = _edge_endpoint(edge, "target", "targetNodeID")
        if source is None or target is None:
            continue
        graph.adjacency.setdefault(source, []).append(target)

    graph.entry_node_id = entry_node_id if entry_node_id is not None else first_node_id

    logger.debug(
        f"Built graph with {len(graph.node_index)} nodes, "
        f"{sum(len(targets) for targets in graph.adjacency.values())} edges, entry={graph.entry_node_id}"
    )
    return graph
