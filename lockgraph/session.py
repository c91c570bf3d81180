"""
LockGraph: static deadlock detection over lock-acquisition traces

Builds a resource-allocation graph from per-thread lock events and reports
the hold/wait cycles that witness a cross-thread deadlock.

License: MIT
Version: 1.0.0
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from lockgraph import advisor
from lockgraph.builder import GraphBuilder, LockEvent, LockRegion
from lockgraph.detector import CycleDetector, DetectionResult
from lockgraph.model import Graph, GraphNode, LockKind, NodeKey, NodeKind
from lockgraph.trace import Trace, TraceFormatError, load_trace

logger = logging.getLogger(__name__)

TRACE_EXTENSIONS = {".json", ".trace"}
LARGE_TRACE_MB = 10


class DeadlockAnalysis:
    """
    One analysis session: a graph, its builder and the detector.

    Builder calls are serialised on a session lock so that several host
    threads may report events concurrently. ``reset()`` takes the same
    lock, so it completes before the next run adds its first node.
    Detection and report formatting only read the graph.
    """

    def __init__(self, graph: Optional[Graph] = None):
        self.graph = graph if graph is not None else Graph()
        self.builder = GraphBuilder(self.graph)
        self.detector = CycleDetector()
        self._lock = threading.RLock()

    # Event intake

    def begin_thread(self, thread_id: str) -> GraphNode:
        with self._lock:
            return self.builder.begin_thread(thread_id)

    def acquire(
        self, thread_id: str, resource: str, lock_kind: Optional[LockKind] = None
    ):
        with self._lock:
            self.builder.acquire(thread_id, resource, lock_kind)

    def try_acquire(
        self,
        thread_id: str,
        resource: str,
        lock_kind: Optional[LockKind] = None,
        timed: bool = False,
    ):
        with self._lock:
            self.builder.try_acquire(thread_id, resource, lock_kind, timed)

    def release(
        self, thread_id: str, resource: str, lock_kind: Optional[LockKind] = None
    ):
        with self._lock:
            self.builder.release(thread_id, resource, lock_kind)

    def park(self, thread_id: str):
        with self._lock:
            self.builder.park(thread_id)

    def unpark(self, thread_id: str, target: Optional[str]):
        with self._lock:
            self.builder.unpark(thread_id, target)

    def feed(self, events: Iterable[LockEvent]) -> int:
        with self._lock:
            return self.builder.feed(events)

    def walk_region(self, thread_id: str, region: Union[LockRegion, LockEvent]):
        with self._lock:
            self.builder.walk_region(thread_id, region)

    def new_thread_id(self, owner: Optional[str] = None, offset: int = 0) -> str:
        with self._lock:
            return self.builder.new_thread_id(owner, offset)

    def load(self, trace: Trace) -> int:
        """Feed every thread of a parsed trace, returning the event count"""
        count = 0
        with self._lock:
            for thread in trace.threads:
                self.builder.begin_thread(thread.thread_id)
                self.builder.feed(thread.events)
                for region in thread.regions:
                    self.builder.walk_region(thread.thread_id, region)
                count += thread.event_count
        return count

    # Reporting side

    def detect(self) -> DetectionResult:
        return self.detector.detect(self.graph)

    def nodes(self) -> Dict[NodeKey, GraphNode]:
        return self.graph.nodes()

    def nodes_by_id(self) -> Dict[str, GraphNode]:
        return self.graph.nodes_by_id()

    def format_report(self, cycles: List[List[GraphNode]]) -> str:
        return advisor.format_report(cycles)

    def suggestions(self, cycles: List[List[GraphNode]]) -> str:
        return advisor.suggestions(cycles)

    def reset(self):
        with self._lock:
            self.graph.reset()
            self.builder.reset()


@dataclass
class AnalysisResult:
    """Complete analysis results for one trace file"""

    file_analyzed: str = ""
    has_deadlock: bool = False
    cycles: List[List[str]] = field(default_factory=list)
    report: str = ""
    suggestions: str = ""
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metrics: Dict[str, int] = field(default_factory=dict)
    analysis_time: float = 0.0


class LockGraphAnalyzer:
    """
    Analyzes event trace files one at a time.

    Each file gets a fresh graph: the session is reset before the trace is
    fed, so nothing leaks between unrelated files.
    """

    def __init__(self, session: Optional[DeadlockAnalysis] = None):
        self.session = session if session is not None else DeadlockAnalysis()
        self.last_detection: Optional[DetectionResult] = None

    def analyze_file(self, filepath: Path) -> AnalysisResult:
        """
        Analyze a trace file for deadlock cycles

        Args:
            filepath: Path to the JSON event trace

        Returns:
            AnalysisResult; unreadable input is recorded in ``errors``
        """
        start_time = time.time()
        filepath = Path(filepath)
        self.result = AnalysisResult(file_analyzed=str(filepath))

        if not self._validate_file(filepath):
            return self.result

        try:
            trace = load_trace(filepath)
        except TraceFormatError as e:
            self.result.errors.append(f"ERROR loading trace {filepath}: {e}")
            self.result.analysis_time = time.time() - start_time
            return self.result

        self.analyze_trace(trace, self.result)
        self.result.analysis_time = time.time() - start_time
        return self.result

    def analyze_trace(
        self, trace: Trace, result: Optional[AnalysisResult] = None
    ) -> AnalysisResult:
        """Run one detection pass over an already parsed trace"""
        self.result = result if result is not None else AnalysisResult(
            file_analyzed=trace.source
        )
        self.result.warnings.extend(trace.warnings)

        self.session.reset()
        events = self.session.load(trace)
        detection = self.session.detect()
        self.last_detection = detection

        self.result.has_deadlock = detection.has_deadlock
        self.result.cycles = detection.cycle_ids()
        self.result.report = self.session.format_report(detection.cycles)
        self.result.suggestions = self.session.suggestions(detection.cycles)
        self._calculate_metrics(events, detection)

        logger.info(
            "%s: %d thread(s), %d cycle(s)",
            trace.source or "<trace>",
            len(trace.threads),
            len(detection.cycles),
        )
        return self.result

    def _validate_file(self, filepath: Path) -> bool:
        if not filepath.exists():
            self.result.errors.append(f"File does not exist: {filepath}")
            return False

        if not filepath.is_file():
            self.result.errors.append(f"Path is not a file: {filepath}")
            return False

        if filepath.suffix.lower() not in TRACE_EXTENSIONS:
            self.result.warnings.append(
                f"Warning: Unusual file extension '{filepath.suffix}' for event trace"
            )

        try:
            size_mb = filepath.stat().st_size / (1024 * 1024)
        except OSError as e:
            self.result.errors.append(f"Cannot read file stats: {e}")
            return False
        if size_mb > LARGE_TRACE_MB:
            self.result.warnings.append(
                f"Warning: Large trace ({size_mb:.1f}MB) may impact analysis performance"
            )
        return True

    def _calculate_metrics(self, events: int, detection: DetectionResult):
        nodes = self.session.nodes().values()
        processes = [node for node in nodes if node.kind is NodeKind.PROCESS]
        resources = [node for node in nodes if node.kind is NodeKind.RESOURCE]
        wait_edges = sum(len(node.edges) for node in processes)
        hold_edges = sum(len(node.edges) for node in resources)

        self.result.metrics = {
            "events": events,
            "processes": len(processes),
            "resources": len(resources),
            "edges": wait_edges + hold_edges,
            "wait_edges": wait_edges,
            "hold_edges": hold_edges,
            "cycles": len(detection.cycles),
        }
