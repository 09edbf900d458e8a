import logging
import threading
from datetime import datetime
from typing import List, Optional, Sequence
from scan_engine.aggregator import FindingAggregator, verify_summary
from scan_engine.checks.base import BaseCheck
from scan_engine.checks.cis_check import CISCheck
from scan_engine.checks.container_check import ContainerCheck
from scan_engine.config import ScanSettings, load_settings
from scan_engine.errors import ScanSetupError
from scan_engine.models import Finding, OSInfo, Package, ScanResult, ScanState, ScanTarget
from scan_engine.runner import CheckOutcome, CheckRunner, CheckStatus
from scan_engine.targets import TargetHandle

logger = logging.getLogger(__name__)

class ScanEngine:
    def __init__(self, settings: Optional[ScanSettings] = None):
        self.settings = settings or load_settings()
        self.runner = CheckRunner(
            max_workers=self.settings.max_workers,
            check_timeout=self.settings.check_timeout,
        )

    def _transition(self, current: Optional[ScanState], state: ScanState) -> ScanState:
        logger.info("Scan state: %s -> %s", current.value if current else "-", state.value)
        return state

    def run_scan(
        self,
        target: ScanTarget,
        os_info: OSInfo,
        handle: TargetHandle,
        cis_checks: Sequence[CISCheck] = (),
        container_checks: Sequence[ContainerCheck] = (),
        packages: Optional[List[Package]] = None,
        package_findings: Sequence[Finding] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> ScanResult:
        """
        Evaluates every check against `handle`, merges the check findings with
        the supplied package-vulnerability findings and returns the summarized
        report. Per-check failures end up in `ScanResult.errors`; a cancelled
        scan returns whatever had completed.
        """
        if os_info is None or os_info.is_empty():
            raise ScanSetupError("OS information is required before scanning")
        if handle is None:
            raise ScanSetupError("a target handle is required before scanning")

        result = ScanResult(target=target, os=os_info, packages=list(packages or []))
        aggregator = FindingAggregator()
        try:
            aggregator.add_package_findings(package_findings)
        except ValueError as e:
            raise ScanSetupError(str(e)) from e
        # Lifecycle state is per scan; one engine may run several scans at once
        state = self._transition(None, ScanState.CREATED)

        state = self._transition(state, ScanState.EVALUATING)
        checks: List[BaseCheck] = [*cis_checks, *container_checks]
        logger.info(
            "Evaluating %d CIS and %d container checks on %s target",
            len(cis_checks), len(container_checks), target.type,
        )
        outcomes = self.runner.run(
            checks,
            handle,
            on_finding=lambda index, finding: aggregator.submit(finding, index),
            cancel_event=cancel_event,
        )

        state = self._transition(state, ScanState.AGGREGATING)
        result.findings = aggregator.findings()
        result.errors = [outcome.error for outcome in outcomes if outcome.status == CheckStatus.ERROR]
        result.metadata = self._outcome_metadata(outcomes, cancel_event)
        result.compute_summary()
        verify_summary(result.summary, result.findings)

        state = self._transition(state, ScanState.DONE)
        result.metadata["scan_state"] = state.value
        result.timestamp = datetime.utcnow()
        logger.info(
            "Scan complete: %d findings, %d checks could not be evaluated",
            result.summary.total, len(result.errors),
        )
        return result

    def _outcome_metadata(self, outcomes: Sequence[CheckOutcome], cancel_event: Optional[threading.Event]):
        counts = {status: 0 for status in CheckStatus}
        for outcome in outcomes:
            counts[outcome.status] += 1

        cancelled = cancel_event is not None and cancel_event.is_set()
        if cancelled:
            logger.warning("Scan cancelled, returning partial report")

        return {
            "checks_total": str(len(outcomes)),
            "checks_passed": str(counts[CheckStatus.PASSED]),
            "checks_failed": str(counts[CheckStatus.FAILED]),
            "checks_errored": str(counts[CheckStatus.ERROR]),
            "checks_cancelled": str(counts[CheckStatus.CANCELLED]),
            "cancelled": "true" if cancelled else "false",
        }
