from __future__ import annotations

import itertools

import pytest
from pydantic import ValidationError

from scan_engine.models import (
    Finding,
    FindingType,
    OSInfo,
    Package,
    RemediationStep,
    ScanResult,
    ScanTarget,
    Severity,
    severity_rank,
)

ORDERED = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO, Severity.UNKNOWN]


def _finding(finding_id: str, severity: Severity, finding_type: FindingType = FindingType.CIS_BENCHMARK, **kwargs) -> Finding:
    return Finding(
        id=finding_id,
        type=finding_type,
        severity=severity,
        title=f"title {finding_id}",
        remediation=RemediationStep(summary="fix it", priority=severity_rank(severity)),
        **kwargs,
    )


def test_severity_rank_fixed_values() -> None:
    assert [severity_rank(s) for s in ORDERED] == [0, 1, 2, 3, 4, 5]


def test_severity_rank_orders_by_severity() -> None:
    for (i, s1), (j, s2) in itertools.product(enumerate(ORDERED), repeat=2):
        assert (severity_rank(s1) < severity_rank(s2)) == (i < j)


def test_unrecognized_severity_is_ranked_last_not_rejected() -> None:
    assert Severity("bogus") is Severity.UNKNOWN
    assert severity_rank("bogus") == 5
    assert severity_rank("high") == 1

    finding = _finding("X-1", "Catastrophic")
    assert finding.severity is Severity.UNKNOWN


def test_package_only_allowed_on_package_vulns() -> None:
    pkg = Package(name="openssl", version="3.0.2", source="dpkg")
    finding = _finding("CVE-1", Severity.HIGH, FindingType.PACKAGE_VULN, package=pkg)
    assert finding.package == pkg

    with pytest.raises(ValidationError):
        _finding("CIS-1", Severity.HIGH, FindingType.CIS_BENCHMARK, package=pkg)


def test_compute_summary_counts_by_severity_and_type() -> None:
    result = ScanResult(target=ScanTarget(type="os", rootfs="/"), os=OSInfo(id="ubuntu"))
    result.findings = [
        _finding("CVE-1", Severity.CRITICAL, FindingType.PACKAGE_VULN),
        _finding("CIS-1", Severity.HIGH),
        _finding("CIS-2", Severity.HIGH),
        _finding("CTR-1", Severity.LOW, FindingType.CONTAINER),
    ]

    summary = result.compute_summary()

    assert summary.total == 4
    assert summary.by_severity == {Severity.CRITICAL: 1, Severity.HIGH: 2, Severity.LOW: 1}
    assert summary.by_type == {
        FindingType.PACKAGE_VULN: 1,
        FindingType.CIS_BENCHMARK: 2,
        FindingType.CONTAINER: 1,
    }


def test_compute_summary_replaces_previous_summary() -> None:
    result = ScanResult(target=ScanTarget(type="os"), os=OSInfo(id="alpine"))
    result.findings = [_finding("CIS-1", Severity.HIGH)]
    result.compute_summary()

    result.findings = [_finding("CIS-2", Severity.LOW), _finding("CIS-3", Severity.INFO)]
    summary = result.compute_summary()

    assert summary.total == 2
    assert Severity.HIGH not in summary.by_severity
    assert sum(summary.by_severity.values()) == sum(summary.by_type.values()) == 2


def test_report_dump_omits_empty_optional_fields() -> None:
    result = ScanResult(target=ScanTarget(type="os", rootfs="/"), os=OSInfo(id="debian", version_id="12"))
    result.findings = [_finding("CIS-1", Severity.MEDIUM)]
    result.compute_summary()

    data = result.model_dump(mode="json")

    assert set(data) == {"target", "os", "findings", "summary", "timestamp"}
    assert data["target"] == {"type": "os", "rootfs": "/"}
    finding = data["findings"][0]
    assert set(finding) == {"id", "type", "severity", "title", "description", "remediation"}
    assert finding["remediation"] == {"summary": "fix it", "priority": 2}
    assert data["summary"] == {"total": 1, "by_severity": {"MEDIUM": 1}, "by_type": {"CIS_BENCHMARK": 1}}


def test_report_dump_keeps_populated_optional_fields() -> None:
    pkg = Package(name="zlib", version="1.2.11", arch="amd64")
    finding = _finding(
        "CVE-2022-37434",
        Severity.CRITICAL,
        FindingType.PACKAGE_VULN,
        package=pkg,
        cves=["CVE-2022-37434"],
        fixed_in="1.2.12",
    )

    data = finding.model_dump(mode="json")

    assert data["package"] == {"name": "zlib", "version": "1.2.11", "arch": "amd64"}
    assert data["cves"] == ["CVE-2022-37434"]
    assert data["fixed_in"] == "1.2.12"
    assert "references" not in data


def test_os_info_is_empty() -> None:
    assert OSInfo().is_empty()
    assert OSInfo(id="  ").is_empty()
    assert not OSInfo(id="rhel").is_empty()


def test_unrecognized_severity_keeps_its_label() -> None:
    finding = _finding("X-2", "MODERATE")
    assert finding.severity is Severity.UNKNOWN
    assert finding.severity_label == "MODERATE"

    data = finding.model_dump(mode="json")
    assert data["severity"] == "UNKNOWN"
    assert data["severity_label"] == "MODERATE"


@pytest.mark.parametrize("severity", [Severity.HIGH, "high", "UNKNOWN"])
def test_known_severity_has_no_label(severity) -> None:
    finding = _finding("X-3", severity)
    assert finding.severity_label is None
    assert "severity_label" not in finding.model_dump(mode="json")
