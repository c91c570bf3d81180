"""Human-readable deadlock summaries and remediation advice."""

from typing import List, Sequence

from lockgraph.model import GraphNode, NodeKind

ARROW = " → "

GENERAL_ADVICE = [
    "Consistent lock ordering: make every thread acquire locks in the same global order",
    "Timed acquisition: use tryLock() with a timeout instead of waiting forever",
    "Finer-grained locking: split coarse locks into smaller ones to reduce contention",
    "Avoid nested acquisition: do not take another lock while holding one",
    "Higher-level primitives: prefer concurrent collections, atomics and executors over explicit locks",
]


def format_cycle(cycle: Sequence[GraphNode]) -> str:
    parts = []
    for node in cycle:
        role = "process" if node.kind is NodeKind.PROCESS else "resource"
        parts.append(f"{node.id}({role})")
    return ARROW.join(parts)


def format_report(cycles: Sequence[Sequence[GraphNode]]) -> str:
    if not cycles:
        return "No deadlock detected"

    lines = ["Deadlock detected!"]
    for index, cycle in enumerate(cycles, 1):
        lines.append(f"Deadlock cycle {index}: {format_cycle(cycle)}")
    return "\n".join(lines) + "\n"


def lock_order(cycle: Sequence[GraphNode]) -> List[str]:
    """Resource ids of a cycle in first-seen order, without repeats"""
    order: List[str] = []
    for node in cycle:
        if node.kind is NodeKind.RESOURCE and node.id not in order:
            order.append(node.id)
    return order


def suggestions(cycles: Sequence[Sequence[GraphNode]]) -> str:
    """
    Remediation advice for a list of validated deadlock cycles.

    General principles come first, followed by a suggested total lock
    order for every cycle.
    """
    lines = ["", "Deadlock resolution suggestions:"]
    if not cycles:
        lines.append("No deadlock detected, no remediation needed")
        return "\n".join(lines)

    for index, advice in enumerate(GENERAL_ADVICE, 1):
        lines.append(f"{index}. {advice}")

    lines.append("")
    lines.append("Suggestions for the detected deadlocks:")
    for index, cycle in enumerate(cycles, 1):
        lines.append("")
        lines.append(f"Deadlock cycle {index}:")
        order = lock_order(cycle)
        if len(order) >= 2:
            lines.append(f"   - Acquire these locks in one order: {ARROW.join(order)}")
        lines.append("   - Consider refactoring to avoid acquiring these locks nested")
    return "\n".join(lines) + "\n"
