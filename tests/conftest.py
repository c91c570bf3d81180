"""Pytest configuration and fixtures for LockGraph tests."""
import os
import sys
from pathlib import Path

import pytest

# Add the parent directory to the path so we can import lockgraph uninstalled
sys.path.insert(0, str(Path(__file__).parent.parent))

from lockgraph.builder import GraphBuilder  # noqa: E402
from lockgraph.model import Graph  # noqa: E402
from lockgraph.session import DeadlockAnalysis, LockGraphAnalyzer  # noqa: E402
from tests.test_utils import create_temp_trace_file  # noqa: E402


@pytest.fixture
def graph():
    """A fresh, empty graph."""
    return Graph()


@pytest.fixture
def builder(graph):
    """A builder feeding the ``graph`` fixture."""
    return GraphBuilder(graph)


@pytest.fixture
def session():
    """A new DeadlockAnalysis session."""
    return DeadlockAnalysis()


@pytest.fixture
def analyzer():
    """Create a new LockGraphAnalyzer instance for testing."""
    return LockGraphAnalyzer()


@pytest.fixture
def temp_trace_file():
    """Create a temporary trace file for testing."""

    def _create_file(content, suffix=".json"):
        return create_temp_trace_file(content, suffix)

    return _create_file


@pytest.fixture
def cleanup_temp_files(request):
    """Clean up temporary files after tests."""
    files = []

    def _add_file(filepath):
        if filepath:
            files.append(filepath)
        return filepath

    yield _add_file

    for filepath in files:
        try:
            if filepath and os.path.exists(filepath):
                os.unlink(filepath)
        except (OSError, PermissionError):
            pass


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow (deselect with '-m \"not slow\"')"
    )
