"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for lightstep_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from lightstep_mock import FakeLightstepAPI  # noqa: E402


@pytest.fixture
def api() -> FakeLightstepAPI:
    """A fresh fake Lightstep API per test."""
    return FakeLightstepAPI()

