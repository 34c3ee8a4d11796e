"""
Root conftest.py - Session-scoped fixtures shared across all tests.

This file sets up the Python path so the tests run against the source tree
without an installed package.
"""

from pathlib import Path
import sys

import pytest

# Add directories to path BEFORE importing local modules
EKICAL_SRC_DIR = Path(__file__).parent.parent.resolve() / "src"
if str(EKICAL_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(EKICAL_SRC_DIR))
TESTS_DIR = Path(__file__).parent.resolve()


@pytest.fixture(scope="session")
def tests_dir():
    """Path to tests directory."""
    return TESTS_DIR
