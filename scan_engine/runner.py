import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, List, Optional, Sequence
from pydantic import BaseModel
from scan_engine.checks.base import BaseCheck
from scan_engine.errors import CheckCancelledError, CheckExecutionError
from scan_engine.models import CheckError, CheckErrorKind, Finding
from scan_engine.targets import TargetHandle

logger = logging.getLogger(__name__)

class CheckStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"

class CheckOutcome(BaseModel):
    index: int
    check_id: str
    status: CheckStatus
    finding: Optional[Finding] = None
    error: Optional[CheckError] = None

FindingCallback = Callable[[int, Finding], None]

class CheckRunner:
    def __init__(self, max_workers: int = 4, check_timeout: Optional[float] = None):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.check_timeout = check_timeout

    def run_check(
        self,
        index: int,
        check: BaseCheck,
        target: TargetHandle,
        on_finding: Optional[FindingCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CheckOutcome:
        if cancel_event is not None and cancel_event.is_set():
            return self._error_outcome(index, check, CheckCancelledError("scan cancelled before the check started"))

        try:
            finding = check.evaluate(target, timeout=self.check_timeout, cancel_event=cancel_event)
        except CheckExecutionError as e:
            return self._error_outcome(index, check, e)
        except Exception as e:
            logger.exception("Unexpected error evaluating check %s", check.id)
            return self._error_outcome(index, check, CheckExecutionError(f"{type(e).__name__}: {e}"))

        if finding is None:
            logger.debug("Check %s passed", check.id)
            return CheckOutcome(index=index, check_id=check.id, status=CheckStatus.PASSED)

        logger.info("Check %s failed [%s]: %s", check.id, finding.severity.value, check.title)
        if on_finding is not None:
            on_finding(index, finding)
        return CheckOutcome(index=index, check_id=check.id, status=CheckStatus.FAILED, finding=finding)

    def _error_outcome(self, index: int, check: BaseCheck, exc: CheckExecutionError) -> CheckOutcome:
        if exc.kind == CheckErrorKind.CANCELLED:
            status = CheckStatus.CANCELLED
            logger.debug("Check %s cancelled", check.id)
        else:
            status = CheckStatus.ERROR
            logger.warning("Check %s could not be evaluated (%s): %s", check.id, exc.kind.value, exc.message)
        error = CheckError(
            check_id=check.id,
            finding_type=check.finding_type,
            kind=exc.kind,
            message=exc.message,
        )
        return CheckOutcome(index=index, check_id=check.id, status=status, error=error)

    def run(
        self,
        checks: Sequence[BaseCheck],
        target: TargetHandle,
        on_finding: Optional[FindingCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[CheckOutcome]:
        """
        Evaluates every check in parallel and returns one outcome per check,
        ordered by the check's position in `checks`. `on_finding` is called
        from worker threads as findings appear, in completion order.
        """
        if not checks:
            return []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(checks))) as executor:
            futures = [
                executor.submit(self.run_check, index, check, target, on_finding, cancel_event)
                for index, check in enumerate(checks)
            ]
            # futures are in submission order, so outcomes come back in check order
            return [future.result() for future in futures]
