import regex
from enum import Enum
from scan_engine.errors import RuleError

class Operator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    REGEX = "regex"
    FOUND = "found"
    NOT_FOUND = "not_found"

def _compile(pattern: str, flags: int = 0):
    try:
        return regex.compile(pattern, flags)
    except regex.error as e:
        raise RuleError(f"invalid pattern {pattern!r}: {e}") from e

def _found(actual: str, pattern: str) -> bool:
    # Artifact patterns are matched line by line, so ^ and $ anchor to instructions
    return _compile(pattern, regex.MULTILINE).search(actual) is not None

def compare(operator: str, actual: str, expected: str) -> bool:
    """
    Evaluates `actual` (what the target produced) against `expected` (the
    value or pattern from the rule) and returns True when the check passes.

    Raises RuleError for an unknown operator or an invalid pattern; that is
    neither a pass nor a fail.
    """
    try:
        op = Operator(operator)
    except ValueError:
        raise RuleError(f"unknown operator {operator!r}") from None

    if op == Operator.EQUALS:
        return actual.strip() == expected.strip()
    if op == Operator.CONTAINS:
        return expected in actual
    if op == Operator.NOT_CONTAINS:
        return expected not in actual
    if op == Operator.REGEX:
        return _compile(expected).search(actual) is not None
    if op == Operator.FOUND:
        return _found(actual, expected)
    return not _found(actual, expected)
