"""
Graph builder: turns per-thread lock events into hold/wait edges.

Every thread owns an explicit ownership stack of the resource keys it
currently holds. The stack decides which edges an acquisition produces:

* re-acquiring a key that is already on the stack adds no edges;
* acquiring while holding something adds a wait edge ``thread -> lock``;
* every fresh acquisition adds a hold edge ``lock -> thread``.

Releases only pop the stack. The graph records potential relationships
seen anywhere in the code, so edges are never removed.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from lockgraph.model import Graph, GraphNode, LockKind, NodeKind

logger = logging.getLogger(__name__)

READ_SUFFIX = "_readLock"
WRITE_SUFFIX = "_writeLock"
CLASS_PREFIX = "CLASS_"
PARK_PREFIX = "LockSupport_"


class EventKind(Enum):
    """Lock event emitted by the extraction collaborator"""

    BEGIN_THREAD = "begin_thread"
    ACQUIRE = "acquire"
    TRY_ACQUIRE = "try_acquire"
    RELEASE = "release"
    PARK = "park"
    UNPARK = "unpark"


@dataclass
class LockEvent:
    """One entry of a thread's ordered event stream"""

    kind: EventKind
    thread_id: str
    resource: Optional[str] = None
    lock_kind: Optional[LockKind] = None
    timed: bool = False  # TRY_ACQUIRE only
    target: Optional[str] = None  # UNPARK only


@dataclass
class LockRegion:
    """A lexically scoped lock region and everything nested inside it"""

    resource: str
    lock_kind: Optional[LockKind] = None
    body: List[Union["LockRegion", LockEvent]] = field(default_factory=list)


class OwnershipStack:
    """
    Locks held by one thread, innermost last.

    Each entry remembers the resource as the caller named it next to the
    resolved graph key, so a release that omits the lock kind still finds
    ``rw_readLock`` or ``CLASS_Foo.class`` by its plain name.
    """

    def __init__(self):
        self._entries: List[Tuple[str, str]] = []

    def push(self, key: str, resource: Optional[str] = None):
        self._entries.append((resource or key, key))

    def pop_latest(self, key: str, resource: Optional[str] = None) -> bool:
        """Drop the most recent entry matching ``key`` or the plain ``resource``;
        False if absent"""
        for index in range(len(self._entries) - 1, -1, -1):
            raw, held = self._entries[index]
            if held == key or (resource is not None and raw == resource):
                del self._entries[index]
                return True
        return False

    def holds(self, key: str) -> bool:
        return any(held == key for _, held in self._entries)

    @property
    def depth(self) -> int:
        return len(self._entries)

    def as_tuple(self) -> Tuple[str, ...]:
        return tuple(held for _, held in self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def resource_key(resource: str, lock_kind: Optional[LockKind] = None) -> str:
    """
    Resolve the graph identifier of a lock.

    Read and write views of one read/write lock become distinct resources,
    class-level monitors get a ``CLASS_`` prefix.
    """
    if lock_kind is LockKind.READ_LOCK:
        return resource + READ_SUFFIX
    if lock_kind is LockKind.WRITE_LOCK:
        return resource + WRITE_SUFFIX
    if lock_kind is LockKind.CLASS_LOCK and not resource.startswith(CLASS_PREFIX):
        return CLASS_PREFIX + resource
    return resource


def monitor_lock(expression: str) -> Tuple[str, LockKind]:
    """Classify the lock expression of a monitor region"""
    expression = expression.strip()
    if expression.endswith(".class"):
        return expression, LockKind.CLASS_LOCK
    return expression, LockKind.SYNCHRONIZED


def park_key(thread_id: str) -> str:
    return PARK_PREFIX + thread_id


class GraphBuilder:
    """
    Feeds hold/wait edges into a Graph, one ownership stack per thread.

    The builder never raises on malformed input: releases without a
    matching acquire, events without a resource and events for threads
    that were never begun are tolerated so that a partial extraction does
    not abort the analysis of the remaining threads.
    """

    def __init__(self, graph: Graph):
        self.graph = graph
        self._stacks: Dict[str, OwnershipStack] = {}
        self._thread_counter = 0

    def begin_thread(self, thread_id: str) -> GraphNode:
        self._stacks[thread_id] = OwnershipStack()
        return self.graph.get_or_create_node(thread_id, NodeKind.PROCESS)

    def new_thread_id(self, owner: Optional[str] = None, offset: int = 0) -> str:
        """Generate a run-unique thread id such as ``Thread_Worker_120_3``"""
        self._thread_counter += 1
        return f"Thread_{owner or 'AnonymousThread'}_{offset}_{self._thread_counter}"

    def held_by(self, thread_id: str) -> Tuple[str, ...]:
        stack = self._stacks.get(thread_id)
        return stack.as_tuple() if stack is not None else ()

    def acquire(
        self, thread_id: str, resource: str, lock_kind: Optional[LockKind] = None
    ):
        if not resource:
            logger.debug("Ignoring acquire without resource in %s", thread_id)
            return
        key = resource_key(resource, lock_kind)
        stack = self._stack_for(thread_id)

        if stack.holds(key):
            # Reentrant acquisition never creates a new dependency
            stack.push(key, resource)
            logger.debug("Reentrant acquire of %s by %s", key, thread_id)
            return

        process = self.graph.get_or_create_node(thread_id, NodeKind.PROCESS)
        lock = self.graph.get_or_create_node(key, NodeKind.RESOURCE, lock_kind)
        if len(stack):
            self.graph.add_edge(process, lock)
            logger.debug("Wait edge %s -> %s", thread_id, key)
        else:
            logger.debug("First lock of %s: %s", thread_id, key)
        self.graph.add_edge(lock, process)
        stack.push(key, resource)

    def try_acquire(
        self,
        thread_id: str,
        resource: str,
        lock_kind: Optional[LockKind] = None,
        timed: bool = False,
    ):
        """A timed try-acquire can block and counts as an acquire; an
        untimed one returns immediately and is ignored."""
        if timed:
            self.acquire(thread_id, resource, lock_kind)
        else:
            logger.debug("Untimed try-acquire of %s by %s ignored", resource, thread_id)

    def release(
        self, thread_id: str, resource: str, lock_kind: Optional[LockKind] = None
    ):
        if not resource:
            return
        key = resource_key(resource, lock_kind)
        stack = self._stacks.get(thread_id)
        # Without a lock kind the plain name matches whatever view was taken
        plain = resource if lock_kind is None else None
        if stack is None or not stack.pop_latest(key, plain):
            logger.debug("Unmatched release of %s by %s", key, thread_id)

    def park(self, thread_id: str):
        process = self.graph.get_or_create_node(thread_id, NodeKind.PROCESS)
        token = self.graph.get_or_create_node(
            park_key(thread_id), NodeKind.RESOURCE, LockKind.LOCK_SUPPORT
        )
        self.graph.add_edge(process, token)

    def unpark(self, thread_id: str, target: Optional[str]):
        # The static graph has no event ordering, so the park edge stays.
        logger.debug("%s unparks %s (advisory only)", thread_id, target)

    def apply(self, event: LockEvent):
        kind = event.kind
        if kind is EventKind.BEGIN_THREAD:
            self.begin_thread(event.thread_id)
        elif kind is EventKind.ACQUIRE:
            self.acquire(event.thread_id, event.resource, event.lock_kind)
        elif kind is EventKind.TRY_ACQUIRE:
            self.try_acquire(
                event.thread_id, event.resource, event.lock_kind, event.timed
            )
        elif kind is EventKind.RELEASE:
            self.release(event.thread_id, event.resource, event.lock_kind)
        elif kind is EventKind.PARK:
            self.park(event.thread_id)
        elif kind is EventKind.UNPARK:
            self.unpark(event.thread_id, event.target)

    def feed(self, events: Iterable[LockEvent]) -> int:
        count = 0
        for event in events:
            self.apply(event)
            count += 1
        return count

    def walk_region(self, thread_id: str, region: Union[LockRegion, LockEvent]):
        """
        Process a nested lock region in lexical order.

        The inner regions run against the same ownership stack, so an inner
        acquisition sees the outer locks as held.
        """
        if isinstance(region, LockEvent):
            self.apply(region)
            return
        self.acquire(thread_id, region.resource, region.lock_kind)
        for inner in region.body:
            self.walk_region(thread_id, inner)
        self.release(thread_id, region.resource, region.lock_kind)

    def reset(self):
        self._stacks.clear()
        self._thread_counter = 0

    def _stack_for(self, thread_id: str) -> OwnershipStack:
        stack = self._stacks.get(thread_id)
        if stack is None:
            stack = self._stacks[thread_id] = OwnershipStack()
        return stack
