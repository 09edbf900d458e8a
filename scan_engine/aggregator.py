import threading
from typing import Iterable, List, Sequence
from scan_engine.errors import SummaryMismatchError
from scan_engine.models import Finding, FindingType, ScanSummary, severity_rank

# Producer order in the final report
GROUP_ORDER = {
    FindingType.PACKAGE_VULN: 0,
    FindingType.CIS_BENCHMARK: 1,
    FindingType.CONTAINER: 2,
}

def compute_summary(findings: Sequence[Finding]) -> ScanSummary:
    """Counts findings by severity and by type. Always a full recount."""
    by_severity = {}
    by_type = {}
    for finding in findings:
        by_severity[finding.severity] = by_severity.get(finding.severity, 0) + 1
        by_type[finding.type] = by_type.get(finding.type, 0) + 1
    return ScanSummary(total=len(findings), by_severity=by_severity, by_type=by_type)

def verify_summary(summary: ScanSummary, findings: Sequence[Finding]):
    total = len(findings)
    if summary.total != total or sum(summary.by_severity.values()) != total or sum(summary.by_type.values()) != total:
        raise SummaryMismatchError(
            f"summary out of sync: total={summary.total}, "
            f"by_severity={sum(summary.by_severity.values())}, "
            f"by_type={sum(summary.by_type.values())}, findings={total}"
        )

def sort_by_severity(findings: Iterable[Finding]) -> List[Finding]:
    """Most severe first; ties keep their report order."""
    return sorted(findings, key=lambda f: severity_rank(f.severity))

class FindingAggregator:
    """
    Collects findings from concurrent producers. Each submission carries its
    producer's position so the merged sequence does not depend on arrival order.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries = []

    def submit(self, finding: Finding, position: int):
        with self._lock:
            self._entries.append((GROUP_ORDER.get(finding.type, len(GROUP_ORDER)), position, finding))

    def add_package_findings(self, findings: Sequence[Finding]):
        for finding in findings:
            if finding.type != FindingType.PACKAGE_VULN:
                raise ValueError(
                    f"finding {finding.id} has type {finding.type.value}, expected {FindingType.PACKAGE_VULN.value}"
                )
        for position, finding in enumerate(findings):
            self.submit(finding, position)

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def findings(self) -> List[Finding]:
        with self._lock:
            entries = sorted(self._entries, key=lambda entry: (entry[0], entry[1]))
        return [finding for _, _, finding in entries]
