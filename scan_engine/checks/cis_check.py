from typing import ClassVar, Optional
from scan_engine.checks.base import BaseCheck
from scan_engine.models import FindingType

class CISCheck(BaseCheck):
    finding_type: ClassVar[FindingType] = FindingType.CIS_BENCHMARK

    command: str
    expected: str
    rem_command: Optional[str] = None

    def inspect(self, target, timeout=None, cancel_event=None) -> str:
        # Only stdout is compared; a non-zero exit (e.g. grep without match) is still a value
        result = target.run_command(self.command, timeout=timeout, cancel_event=cancel_event)
        return result.stdout

    def expected_value(self) -> str:
        return self.expected

    def fix_command(self) -> Optional[str]:
        return self.rem_command or None
