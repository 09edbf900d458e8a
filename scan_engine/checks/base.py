import threading
from abc import ABC, abstractmethod
from typing import ClassVar, Optional
from pydantic import BaseModel, Field, model_validator
from scan_engine.comparator import compare
from scan_engine.models import Finding, FindingType, RemediationStep, SeverityField, keep_severity_label, severity_rank
from scan_engine.targets import TargetHandle

class BaseCheck(BaseModel, ABC):
    """
    A declarative rule. Holds no results and no state between runs; each
    evaluation inspects the target on its own.
    """

    finding_type: ClassVar[FindingType]

    id: str
    title: str
    description: str = ""
    operator: str = Field(..., description="One of the comparator operators; validated at evaluation time")
    severity: SeverityField
    severity_label: Optional[str] = None
    remediation: str = ""

    @model_validator(mode="before")
    @classmethod
    def record_severity_label(cls, data):
        return keep_severity_label(data)

    @abstractmethod
    def inspect(
        self,
        target: TargetHandle,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """Obtains the actual value from the target."""
        pass

    @abstractmethod
    def expected_value(self) -> str:
        pass

    def fix_command(self) -> Optional[str]:
        return None

    def evaluate(
        self,
        target: TargetHandle,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Finding]:
        """
        Returns a Finding when the check fails, None when it passes.
        Raises CheckExecutionError when the check cannot be evaluated.
        """
        actual = self.inspect(target, timeout=timeout, cancel_event=cancel_event)
        if compare(self.operator, actual, self.expected_value()):
            return None
        return self.to_finding()

    def to_finding(self) -> Finding:
        return Finding(
            id=self.id,
            type=self.finding_type,
            severity=self.severity,
            severity_label=self.severity_label,
            title=self.title,
            description=self.description,
            remediation=RemediationStep(
                summary=self.remediation,
                command=self.fix_command(),
                priority=severity_rank(self.severity),
            ),
        )
