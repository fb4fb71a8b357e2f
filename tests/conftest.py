"""
Pytest configuration and fixtures for disc-renamer tests.
"""

import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Small threshold so test files can stay tiny
MIN_SIZE = 1024


@pytest.fixture
def make_video() -> Callable[..., Path]:
    """Factory writing a file of a given size (default: just above MIN_SIZE)."""

    def _make(path: Path, size: int = MIN_SIZE + 1) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\0" * size)
        return path

    return _make


@pytest.fixture
def make_disc(make_video: Callable[..., Path]) -> Callable[..., Path]:
    """Factory creating a disc folder with the given video filenames."""

    def _make(parent: Path, name: str, files: list[str]) -> Path:
        disc = parent / name
        disc.mkdir(parents=True, exist_ok=True)
        for f in files:
            make_video(disc / f)
        return disc

    return _make
