import json
import logging
import os
import signal
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional
from pydantic import BaseModel
from scan_engine.errors import CheckCancelledError, CheckExecutionError, CheckTimeoutError, RuleError
from scan_engine.models import ScanTarget

logger = logging.getLogger(__name__)

# Exit statuses /bin/sh uses for "not executable" and "command not found"
SHELL_MISSING_COMMAND = (126, 127)

POLL_INTERVAL = 0.1

class CommandResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

class TargetHandle(ABC):
    """What the checks are allowed to see of the scanned system."""

    @abstractmethod
    def run_command(
        self,
        command: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CommandResult:
        """
        Runs an inspection command against the target and captures its output.
        Raises CheckExecutionError (or a subclass) when no output can be obtained.
        """
        pass

    @abstractmethod
    def fetch_artifact(
        self,
        check_type: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Returns the text searched by container checks: the Dockerfile for
        "dockerfile", the image config as JSON for "image".
        """
        pass

class _ArtifactSlot:
    """Outcome of one artifact fetch, shared by every check reading that artifact."""

    def __init__(self):
        self.ready = threading.Event()
        self.value: Optional[str] = None
        self.error: Optional[CheckExecutionError] = None

def _wait_until(deadline: Optional[float], cancel_event: Optional[threading.Event], what: str):
    if cancel_event is not None and cancel_event.is_set():
        raise CheckCancelledError(f"scan cancelled while {what}")
    if deadline is not None and time.monotonic() >= deadline:
        raise CheckTimeoutError(f"timed out while {what}")

class LocalTarget(TargetHandle):
    def __init__(self, target: ScanTarget):
        self.target = target
        self.rootfs = target.rootfs or "/"
        self._artifacts = {}
        self._artifact_lock = threading.Lock()

    def _argv(self, command: str):
        if os.path.abspath(self.rootfs) == "/":
            return ["/bin/sh", "-c", command]
        return ["chroot", self.rootfs, "/bin/sh", "-c", command]

    def _execute(self, argv, what: str, timeout=None, cancel_event=None):
        """
        Runs argv to completion, polling for the deadline and for cancellation.
        The process group is killed on either, so pipelines do not linger.
        """
        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            raise CheckExecutionError(f"cannot run {what}: {e}") from e

        deadline = time.monotonic() + timeout if timeout else None
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=POLL_INTERVAL)
                return stdout, stderr, proc.returncode
            except subprocess.TimeoutExpired:
                try:
                    _wait_until(deadline, cancel_event, f"running {what}")
                except CheckExecutionError:
                    self._kill(proc)
                    raise

    def _kill(self, proc: subprocess.Popen):
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        proc.communicate()

    def run_command(self, command, timeout=None, cancel_event=None) -> CommandResult:
        stdout, stderr, exit_code = self._execute(self._argv(command), repr(command), timeout, cancel_event)

        if exit_code in SHELL_MISSING_COMMAND:
            raise CheckExecutionError(f"{command!r} could not be executed (exit {exit_code}): {stderr.strip()}")
        # A failing command that only wrote errors produced no value (e.g. cat on a missing file);
        # grep without a match exits 1 silently and still counts as an empty value
        if exit_code != 0 and not stdout.strip() and stderr.strip():
            raise CheckExecutionError(f"{command!r} failed (exit {exit_code}): {stderr.strip()}")
        return CommandResult(stdout=stdout, stderr=stderr, exit_code=exit_code)

    def fetch_artifact(self, check_type, timeout=None, cancel_event=None) -> str:
        if check_type == "dockerfile":
            loader = self._read_dockerfile
        elif check_type == "image":
            loader = self._inspect_image
        else:
            raise RuleError(f"unsupported check_type {check_type!r}")

        # Many checks share one artifact: the first caller fetches it, the others
        # wait for its outcome, failures included
        with self._artifact_lock:
            slot = self._artifacts.get(check_type)
            owner = slot is None
            if owner:
                slot = self._artifacts[check_type] = _ArtifactSlot()

        if owner:
            try:
                slot.value = loader(timeout=timeout, cancel_event=cancel_event)
            except CheckCancelledError:
                with self._artifact_lock:
                    del self._artifacts[check_type]
                raise
            except CheckExecutionError as e:
                logger.warning("Cannot fetch %s artifact: %s", check_type, e.message)
                slot.error = e
                raise
            finally:
                slot.ready.set()
            return slot.value

        deadline = time.monotonic() + timeout if timeout else None
        while not slot.ready.wait(POLL_INTERVAL):
            _wait_until(deadline, cancel_event, f"waiting for the {check_type} artifact")
        if slot.error is not None:
            raise type(slot.error)(slot.error.message)
        if slot.value is None:
            raise CheckCancelledError(f"fetching the {check_type} artifact was cancelled")
        return slot.value

    def _read_dockerfile(self, timeout=None, cancel_event=None) -> str:
        path = self.target.dockerfile
        if not path:
            raise CheckExecutionError("no Dockerfile configured for this target")
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            raise CheckExecutionError(f"cannot read Dockerfile {path}: {e}") from e

    def _inspect_image(self, timeout=None, cancel_event=None) -> str:
        image = self.target.image
        if not image:
            raise CheckExecutionError("no image configured for this target")

        stdout, stderr, exit_code = self._execute(
            ["docker", "image", "inspect", image], f"docker image inspect {image}", timeout, cancel_event
        )
        if exit_code != 0:
            raise CheckExecutionError(f"docker image inspect {image} failed: {stderr.strip()}")

        try:
            output_data = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise CheckExecutionError(f"unreadable metadata for image {image}: {e}") from e

        # Checks match against the config block (User, Env, ExposedPorts, Healthcheck...)
        config = output_data[0].get("Config", {}) if output_data else {}
        logger.debug("Fetched metadata for image %s", image)
        return json.dumps(config, indent=2, sort_keys=True)
