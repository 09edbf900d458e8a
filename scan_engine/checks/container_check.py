from typing import ClassVar
from pydantic import Field
from scan_engine.checks.base import BaseCheck
from scan_engine.models import FindingType

class ContainerCheck(BaseCheck):
    finding_type: ClassVar[FindingType] = FindingType.CONTAINER

    check_type: str = Field(..., description="'dockerfile' or 'image'")
    pattern: str

    def inspect(self, target, timeout=None, cancel_event=None) -> str:
        return target.fetch_artifact(self.check_type, timeout=timeout, cancel_event=cancel_event)

    def expected_value(self) -> str:
        return self.pattern
