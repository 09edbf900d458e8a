from datetime import datetime
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Tuple
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_serializer, model_validator
from enum import Enum

class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value):
        # Case-insensitive lookup; anything unrecognized is ranked last, never rejected.
        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.UNKNOWN

_SEVERITY_RANKS = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}

UNRANKED = 5

def severity_rank(severity) -> int:
    """Numeric rank for sorting, lower is more severe."""
    return _SEVERITY_RANKS.get(Severity(severity), UNRANKED)

SeverityField = Annotated[Severity, BeforeValidator(Severity)]

def keep_severity_label(data):
    """Copies an unrecognized severity string into `severity_label` so the report keeps the rule's own wording."""
    if isinstance(data, dict) and not data.get("severity_label"):
        raw = data.get("severity")
        if isinstance(raw, str) and Severity(raw) is Severity.UNKNOWN and raw.strip().upper() != Severity.UNKNOWN.value:
            data = {**data, "severity_label": raw}
    return data

class FindingType(str, Enum):
    PACKAGE_VULN = "PACKAGE_VULN"
    CIS_BENCHMARK = "CIS_BENCHMARK"
    CONTAINER = "CONTAINER"

class CheckErrorKind(str, Enum):
    EXECUTION = "EXECUTION"
    TIMEOUT = "TIMEOUT"
    INVALID_RULE = "INVALID_RULE"
    CANCELLED = "CANCELLED"

class ScanState(str, Enum):
    CREATED = "CREATED"
    EVALUATING = "EVALUATING"
    AGGREGATING = "AGGREGATING"
    DONE = "DONE"

class ReportModel(BaseModel):
    """Base for report records; fields listed in `omit_when_empty` are dropped from dumps when unset."""

    omit_when_empty: ClassVar[Tuple[str, ...]] = ()

    @model_serializer(mode="wrap")
    def drop_empty_fields(self, handler) -> Dict[str, Any]:
        data = handler(self)
        for name in self.omit_when_empty:
            if name in data and not data[name]:
                del data[name]
        return data

class Package(ReportModel):
    model_config = ConfigDict(frozen=True)
    omit_when_empty: ClassVar[Tuple[str, ...]] = ("arch", "source")

    name: str
    version: str
    arch: Optional[str] = None
    source: Optional[str] = Field(default=None, description="Package manager, e.g. dpkg, rpm, apk")

class RemediationStep(ReportModel):
    omit_when_empty: ClassVar[Tuple[str, ...]] = ("command", "details")

    summary: str
    command: Optional[str] = None
    details: Optional[str] = None
    priority: int = Field(default=0, description="Lower = fix first")

class Finding(ReportModel):
    omit_when_empty: ClassVar[Tuple[str, ...]] = ("severity_label", "package", "cves", "fixed_in", "references")

    id: str
    type: FindingType
    severity: SeverityField
    severity_label: Optional[str] = Field(default=None, description="Original severity text when it is not a known level")
    title: str
    description: str = ""
    package: Optional[Package] = None
    cves: List[str] = []
    fixed_in: Optional[str] = None
    references: List[str] = []
    remediation: RemediationStep

    @model_validator(mode="before")
    @classmethod
    def record_severity_label(cls, data):
        return keep_severity_label(data)

    @model_validator(mode="after")
    def check_package_pairing(self):
        if self.package is not None and self.type != FindingType.PACKAGE_VULN:
            raise ValueError(f"finding {self.id}: package is only allowed on {FindingType.PACKAGE_VULN.value} findings")
        return self

class OSInfo(ReportModel):
    id: str = ""
    version_id: str = ""
    name: str = ""
    pretty_name: str = ""

    def is_empty(self) -> bool:
        return not self.id.strip()

class ScanTarget(ReportModel):
    omit_when_empty: ClassVar[Tuple[str, ...]] = ("image", "dockerfile", "rootfs")

    type: str = Field(..., description="'os' or 'container'")
    image: Optional[str] = None
    dockerfile: Optional[str] = None
    rootfs: Optional[str] = Field(default=None, description="Filesystem root, / or an extracted container")

class ScanSummary(BaseModel):
    total: int = 0
    by_severity: Dict[Severity, int] = {}
    by_type: Dict[FindingType, int] = {}

class CheckError(BaseModel):
    """A check that could not be evaluated. Kept apart from findings so that
    "no issue found" and "could not determine" stay distinguishable."""

    check_id: str
    finding_type: FindingType
    kind: CheckErrorKind
    message: str

class ScanResult(ReportModel):
    omit_when_empty: ClassVar[Tuple[str, ...]] = ("packages", "metadata", "errors")

    target: ScanTarget
    os: OSInfo
    findings: List[Finding] = []
    summary: ScanSummary = Field(default_factory=ScanSummary)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    packages: List[Package] = []
    metadata: Dict[str, str] = {}
    errors: List[CheckError] = []

    def compute_summary(self) -> ScanSummary:
        """Rebuild the summary from the current findings."""
        from scan_engine.aggregator import compute_summary

        self.summary = compute_summary(self.findings)
        return self.summary
