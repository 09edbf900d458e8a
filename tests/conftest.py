from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Dict, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from scan_engine.errors import CheckCancelledError, CheckExecutionError, CheckTimeoutError
from scan_engine.targets import CommandResult, TargetHandle


class FakeTarget(TargetHandle):
    """In-memory target: canned command outputs, artifacts and slow commands."""

    def __init__(
        self,
        outputs: Optional[Dict[str, str]] = None,
        artifacts: Optional[Dict[str, str]] = None,
        delays: Optional[Dict[str, float]] = None,
    ) -> None:
        self.outputs = outputs or {}
        self.artifacts = artifacts or {}
        self.delays = delays or {}
        self.calls = []
        self._lock = threading.Lock()

    def run_command(self, command, timeout=None, cancel_event=None) -> CommandResult:
        with self._lock:
            self.calls.append(command)
        delay = self.delays.get(command, 0.0)
        if delay:
            deadline = time.monotonic() + delay
            while time.monotonic() < deadline:
                if cancel_event is not None and cancel_event.is_set():
                    raise CheckCancelledError(f"cancelled {command!r}")
                if timeout is not None and time.monotonic() - (deadline - delay) >= timeout:
                    raise CheckTimeoutError(f"{command!r} timed out after {timeout}s")
                time.sleep(0.01)
        if command not in self.outputs:
            raise CheckExecutionError(f"{command!r}: command not found")
        return CommandResult(stdout=self.outputs[command])

    def fetch_artifact(self, check_type: str, timeout=None, cancel_event=None) -> str:
        if check_type not in self.artifacts:
            raise CheckExecutionError(f"no {check_type} artifact")
        return self.artifacts[check_type]


@pytest.fixture
def fake_target_factory():
    return FakeTarget
