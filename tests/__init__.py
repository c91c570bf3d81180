"""Test package for the LockGraph deadlock detector.

This package contains unit and integration tests for the graph model,
builder, cycle detector, advisory output, trace loader and CLI.
"""

__all__ = ["test_analyzer", "test_integration", "test_utils"]
