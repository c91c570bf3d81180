"""LockGraph: static deadlock detection with resource-allocation graphs."""

import logging

from lockgraph.advisor import format_report, suggestions
from lockgraph.builder import (
    EventKind,
    GraphBuilder,
    LockEvent,
    LockRegion,
    OwnershipStack,
    resource_key,
)
from lockgraph.detector import CycleDetector, DetectionResult, detect
from lockgraph.model import Graph, GraphNode, LockKind, NodeKind
from lockgraph.session import AnalysisResult, DeadlockAnalysis, LockGraphAnalyzer
from lockgraph.trace import TraceFormatError, load_trace, parse_trace

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "AnalysisResult",
    "CycleDetector",
    "DeadlockAnalysis",
    "DetectionResult",
    "EventKind",
    "Graph",
    "GraphBuilder",
    "GraphNode",
    "LockEvent",
    "LockGraphAnalyzer",
    "LockKind",
    "LockRegion",
    "NodeKind",
    "OwnershipStack",
    "TraceFormatError",
    "detect",
    "format_report",
    "load_trace",
    "parse_trace",
    "resource_key",
    "suggestions",
]
