"""Evaluation of pre/post-condition expectations against query results."""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

# two-character operators are matched before their one-character prefixes
_COMPARATORS = (
    (">=", lambda a, b: a >= b),
    ("<=", lambda a, b: a <= b),
    (">", lambda a, b: a > b),
    ("<", lambda a, b: a < b),
)


class ConditionEvaluator:
    """
    Compares an actual query result with an expected-result string.
    Single Responsibility: expectation semantics only, no query execution.

    Expected values: ``None`` (always satisfied), ``">=N"``, ``"<=N"``,
    ``">N"``, ``"<N"``, ``"!=x"`` or a literal compared by loose equality.
    """

    def evaluate(self, actual: Any, expected: Optional[str], tolerance: Optional[float] = None) -> bool:
        if expected is None:
            return True
        expected = str(expected).strip()

        for prefix, compare in _COMPARATORS:
            if expected.startswith(prefix):
                left = self._to_float(actual)
                right = self._to_float(expected[len(prefix):])
                if left is None or right is None:
                    return False
                return compare(left, right)

        if expected.startswith("!="):
            return str(actual).strip() != expected[2:].strip()

        return self.loosely_equal(actual, expected, tolerance)

    def loosely_equal(self, actual: Any, expected: str, tolerance: Optional[float] = None) -> bool:
        """Equal as given, as numbers (within ``tolerance``), or as trimmed strings."""
        if actual == expected:
            return True
        left = self._to_float(actual)
        right = self._to_float(expected)
        if left is not None and right is not None:
            return abs(left - right) <= (tolerance or 0.0)
        if actual is None:
            return False
        return str(actual).strip() == expected

    @staticmethod
    def _to_float(value: Any) -> Optional[float]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(str(value).strip())
        except ValueError:
            return None
