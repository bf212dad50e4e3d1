"""
Test support utilities for jobdeck tests.

Job classes and an in-memory scheduling engine that don't fit as pytest
fixtures but are shared across test files.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

TEST_SECRET = "test-signing-secret-" + "x" * 44


def write_yaml(path: Path, data: dict[str, Any]) -> Path:
    """Dump *data* as YAML to *path* and return the path."""
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll *predicate* until it is true or *timeout* seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
