from scan_engine.models import CheckErrorKind


class ScanEngineError(Exception):
    """Base class for every error raised by the scan engine."""


class ScanSetupError(ScanEngineError):
    """The scan cannot start: missing OS information or target handle."""


class SummaryMismatchError(ScanEngineError):
    """Summary counts disagree with the findings they were computed from."""


class CheckExecutionError(ScanEngineError):
    """A single check could not be evaluated."""

    kind = CheckErrorKind.EXECUTION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RuleError(CheckExecutionError):
    # Unknown operator, bad pattern or unsupported check_type
    kind = CheckErrorKind.INVALID_RULE


class CheckTimeoutError(CheckExecutionError):
    kind = CheckErrorKind.TIMEOUT


class CheckCancelledError(CheckExecutionError):
    kind = CheckErrorKind.CANCELLED
