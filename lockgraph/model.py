"""
Resource-allocation graph model.

Process nodes stand for threads, resource nodes for locks. An edge from a
resource to a process means the process holds the resource; an edge from a
process to a resource means the process waits for it. Edges live in the
adjacency list of their source node, there is no separate edge set.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

import networkx as nx

logger = logging.getLogger(__name__)


class NodeKind(Enum):
    """Node classification in the resource-allocation graph"""

    PROCESS = "PROCESS"
    RESOURCE = "RESOURCE"


class LockKind(Enum):
    """Lock flavour of a resource node, used for reporting only"""

    SYNCHRONIZED = "SYNCHRONIZED"  # Mutual-exclusion monitor
    REENTRANT_LOCK = "REENTRANT_LOCK"
    READ_LOCK = "READ_LOCK"
    WRITE_LOCK = "WRITE_LOCK"
    LOCK_SUPPORT = "LOCK_SUPPORT"  # park/unpark token
    CLASS_LOCK = "CLASS_LOCK"  # Class-level monitor

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["LockKind"]:
        """Map a lock kind name to its member, or None if unknown"""
        if not text:
            return None
        try:
            return cls[str(text).strip().upper()]
        except KeyError:
            return None


NodeKey = Tuple[NodeKind, str]


@dataclass(eq=False)
class GraphNode:
    """A process or resource node with its outgoing adjacency list"""

    id: str
    kind: NodeKind
    lock_kind: Optional[LockKind] = None
    edges: List["GraphNode"] = field(default_factory=list, repr=False)

    @property
    def key(self) -> NodeKey:
        return (self.kind, self.id)

    @property
    def is_process(self) -> bool:
        return self.kind is NodeKind.PROCESS

    @property
    def is_resource(self) -> bool:
        return self.kind is NodeKind.RESOURCE

    def add_edge(self, to: "GraphNode"):
        self.edges.append(to)

    def describe(self) -> str:
        return f"{self.id} ({self.kind.value})"


class Graph:
    """
    Node table of one analysis run.

    Nodes are keyed by ``(kind, id)`` so a thread and a lock sharing a name
    stay distinct. Node creation and edge appends are guarded by a lock,
    which lets several host threads feed the same graph.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._nodes: Dict[NodeKey, GraphNode] = {}

    def get_or_create_node(
        self, node_id: str, kind: NodeKind, lock_kind: Optional[LockKind] = None
    ) -> GraphNode:
        """
        Return the node for ``(kind, node_id)``, creating it on first use.

        Args:
            node_id: Stable textual identifier of the thread or lock
            kind: PROCESS or RESOURCE
            lock_kind: Lock flavour, recorded on resource nodes only

        Returns:
            The unique node for this key
        """
        key = (kind, node_id)
        if kind is not NodeKind.RESOURCE:
            lock_kind = None
        with self._lock:
            node = self._nodes.get(key)
            if node is None:
                node = GraphNode(node_id, kind, lock_kind)
                self._nodes[key] = node
            elif node.lock_kind is None and lock_kind is not None:
                node.lock_kind = lock_kind
            return node

    def add_edge(self, source: GraphNode, target: GraphNode):
        with self._lock:
            source.add_edge(target)

    def find(self, node_id: str, kind: NodeKind) -> Optional[GraphNode]:
        with self._lock:
            return self._nodes.get((kind, node_id))

    def nodes(self) -> Dict[NodeKey, GraphNode]:
        """Insertion-ordered copy of the node table"""
        with self._lock:
            return dict(self._nodes)

    def nodes_by_id(self) -> Dict[str, GraphNode]:
        """
        Node table keyed by plain id, for layout and visualisation.

        A thread and a lock may share a name; the node inserted later is
        then listed under its ``describe()`` label, e.g. ``"L1 (RESOURCE)"``.
        """
        by_id: Dict[str, GraphNode] = {}
        with self._lock:
            for node in self._nodes.values():
                label = node.id if node.id not in by_id else node.describe()
                by_id[label] = node
        return by_id

    def snapshot(self) -> List[Tuple[GraphNode, Tuple[GraphNode, ...]]]:
        """Nodes paired with a frozen copy of their adjacency lists"""
        with self._lock:
            return [(node, tuple(node.edges)) for node in self._nodes.values()]

    def edge_count(self) -> int:
        with self._lock:
            return sum(len(node.edges) for node in self._nodes.values())

    def reset(self):
        with self._lock:
            dropped = len(self._nodes)
            self._nodes.clear()
        logger.debug("Graph reset, %d nodes discarded", dropped)

    def to_networkx(self) -> nx.MultiDiGraph:
        """
        Export the graph for visualisation or further analysis.

        Duplicate edges are kept, hence a multigraph. Nodes are keyed by
        ``"<KIND>:<id>"`` strings so process and resource ids never clash.
        """
        exported = nx.MultiDiGraph()
        snapshot = self.snapshot()
        for node, _ in snapshot:
            exported.add_node(
                _export_key(node),
                label=node.id,
                kind=node.kind.value,
                lock_kind=node.lock_kind.value if node.lock_kind else None,
            )
        for node, edges in snapshot:
            for target in edges:
                relation = "waits" if node.is_process else "holds"
                exported.add_edge(
                    _export_key(node), _export_key(target), relation=relation
                )
        return exported

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __contains__(self, key: NodeKey) -> bool:
        with self._lock:
            return key in self._nodes

    def __iter__(self) -> Iterator[GraphNode]:
        return iter(list(self.nodes().values()))


def _export_key(node: GraphNode) -> str:
    return f"{node.kind.value}:{node.id}"
