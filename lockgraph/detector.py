"""
Cycle-based deadlock detection over a resource-allocation graph.

A depth-first search walks the whole graph once (every node is expanded
at most once), recording a candidate cycle whenever it meets a node that
is still on the current path. Candidates are only reported when they can
witness a cross-thread deadlock:

1. at least MIN_CYCLE_LENGTH nodes, counting the closing repeat;
2. node kinds strictly alternate between PROCESS and RESOURCE;
3. at least MIN_DISTINCT_PROCESSES different threads take part.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

from lockgraph.model import Graph, GraphNode, NodeKind

logger = logging.getLogger(__name__)

MIN_CYCLE_LENGTH = 4
MIN_DISTINCT_PROCESSES = 2


@dataclass
class DetectionResult:
    """Outcome of one detection pass"""

    has_deadlock: bool = False
    cycles: List[List[GraphNode]] = field(default_factory=list)

    def cycle_ids(self) -> List[List[str]]:
        return [[node.id for node in cycle] for cycle in self.cycles]

    def __bool__(self) -> bool:
        return self.has_deadlock


def is_valid_deadlock_cycle(cycle: Sequence[GraphNode]) -> bool:
    """Check a closed candidate cycle against the deadlock witness rules"""
    if len(cycle) < MIN_CYCLE_LENGTH:
        return False

    for current, following in zip(cycle, cycle[1:]):
        if current.kind is following.kind:
            return False

    process_ids = {node.id for node in cycle if node.kind is NodeKind.PROCESS}
    return len(process_ids) >= MIN_DISTINCT_PROCESSES


def format_path(cycle: Sequence[GraphNode]) -> str:
    return " -> ".join(node.id for node in cycle)


class CycleDetector:
    """
    Read-only DFS over a Graph snapshot.

    The search is iterative, so long lock chains never run into the
    interpreter recursion limit. Running it twice on an unchanged graph
    gives the same cycles in the same order.
    """

    def detect(self, graph: Graph) -> DetectionResult:
        snapshot = graph.snapshot()
        adjacency: Dict[GraphNode, Tuple[GraphNode, ...]] = dict(snapshot)

        logger.debug("Starting deadlock detection over %d nodes", len(adjacency))
        if logger.isEnabledFor(logging.DEBUG):
            for node, edges in snapshot:
                logger.debug(
                    "Node %s -> [%s]",
                    node.describe(),
                    ", ".join(edge.describe() for edge in edges),
                )

        visited: Set[GraphNode] = set()
        on_stack: Set[GraphNode] = set()
        cycles: List[List[GraphNode]] = []

        for node, _ in snapshot:
            if node not in visited:
                self._search(node, adjacency, visited, on_stack, cycles)

        logger.debug("Detected %d deadlock cycle(s)", len(cycles))
        return DetectionResult(has_deadlock=bool(cycles), cycles=cycles)

    def _search(
        self,
        start: GraphNode,
        adjacency: Dict[GraphNode, Tuple[GraphNode, ...]],
        visited: Set[GraphNode],
        on_stack: Set[GraphNode],
        cycles: List[List[GraphNode]],
    ):
        path: List[GraphNode] = []
        frames = []

        def enter(node: GraphNode):
            visited.add(node)
            on_stack.add(node)
            path.append(node)
            frames.append((node, iter(adjacency.get(node, ()))))

        enter(start)
        while frames:
            node, neighbours = frames[-1]
            descended = False
            for neighbour in neighbours:
                if neighbour not in visited:
                    enter(neighbour)
                    descended = True
                    break
                if neighbour in on_stack:
                    self._record(path, neighbour, cycles)
            if not descended:
                frames.pop()
                on_stack.discard(node)
                path.pop()

    def _record(
        self,
        path: List[GraphNode],
        closing: GraphNode,
        cycles: List[List[GraphNode]],
    ):
        try:
            start = path.index(closing)
        except ValueError:
            return
        cycle = path[start:] + [closing]
        if is_valid_deadlock_cycle(cycle):
            logger.debug("Deadlock cycle: %s", format_path(cycle))
            cycles.append(cycle)
        else:
            logger.debug("Rejected cycle: %s", format_path(cycle))


def detect(graph: Graph) -> DetectionResult:
    return CycleDetector().detect(graph)
