"""Condition Evaluator - Safe evaluation of step conditions"""
from datetime import date, datetime
from typing import Any, Iterable, Optional, Tuple

from ..domain.context import ContextValue, RequestContext
from ..domain.enums import ConditionOperator, ValueKind
from ..domain.models import ABSENT, Condition
from ..utils.logger import get_logger
from ..utils.time import parse_iso

logger = get_logger(__name__)


class ConditionEvaluator:
    """
    Evaluate step conditions against a tagged request context

    Uses a simple DSL - no eval() or exec(). Comparisons switch on the
    context value's kind; a literal that cannot be read in that kind never
    matches.
    """

    def evaluate_all(self, conditions: Iterable[Condition], context: RequestContext) -> bool:
        """AND of all conditions; an empty list always holds"""
        return all(self.evaluate(condition, context) for condition in conditions)

    def evaluate(self, condition: Condition, context: RequestContext) -> bool:
        """
        Evaluate a single condition

        Args:
            condition: Field / operator / value triple
            context: Flattened, tagged request context

        Returns:
            True if the condition holds. Fails closed on malformed operands.
        """
        try:
            return self._evaluate(condition, context.get(condition.field))
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(
                f"Condition evaluation failed for field {condition.field}: {e}",
                extra={"status": "condition_error"}
            )
            return False

    def _evaluate(self, condition: Condition, actual: Optional[ContextValue]) -> bool:
        operator = condition.operator
        expected = condition.value

        # Absent sentinel only applies to equality operators
        if expected == ABSENT and operator in (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS):
            missing = actual is None
            return missing if operator == ConditionOperator.EQUALS else not missing

        if actual is None:
            return False  # Missing field never matches

        if operator == ConditionOperator.EQUALS:
            return self._equals(actual, expected)

        elif operator == ConditionOperator.NOT_EQUALS:
            return not self._equals(actual, expected)

        elif operator == ConditionOperator.GREATER_THAN:
            return self._compare_ordered(actual, expected, lambda a, b: a > b)

        elif operator == ConditionOperator.LESS_THAN:
            return self._compare_ordered(actual, expected, lambda a, b: a < b)

        elif operator == ConditionOperator.CONTAINS:
            if actual.kind == ValueKind.STRING:
                return isinstance(expected, str) and expected in actual.value
            if actual.kind == ValueKind.LIST:
                return any(self._equals(item, expected) for item in actual.items or [])
            return False

        elif operator == ConditionOperator.IN:
            if not isinstance(expected, (list, tuple, set, frozenset)):
                return False
            return any(self._equals(actual, candidate) for candidate in expected)

        return False

    def _equals(self, actual: ContextValue, expected: Any) -> bool:
        """Deep equality with the literal read in the actual value's kind"""
        literal = self._coerce_literal(expected, actual.kind)
        if literal is None or literal.kind != actual.kind:
            return False
        if actual.kind == ValueKind.LIST:
            left = actual.items or []
            right = literal.items or []
            return len(left) == len(right) and all(
                self._equals(a, b.to_python()) for a, b in zip(left, right)
            )
        return actual.value == literal.value

    def _compare_ordered(self, actual: ContextValue, expected: Any, comparator) -> bool:
        """
        Ordered comparison; only NUMBER and DATE values are totally ordered

        STRING values holding an ISO date (contexts loaded from JSON) are
        compared as dates.
        """
        if actual.kind == ValueKind.STRING:
            parsed = self._parse_date(actual.value)
            if parsed is None:
                return False
            actual = ContextValue(kind=ValueKind.DATE, value=parsed)
        if actual.kind not in (ValueKind.NUMBER, ValueKind.DATE):
            return False
        literal = self._coerce_literal(expected, actual.kind)
        if literal is None or literal.kind != actual.kind:
            return False
        return comparator(actual.value, literal.value)

    def _coerce_literal(self, raw: Any, kind: ValueKind) -> Optional[ContextValue]:
        """
        Tag a condition literal, reading ISO strings as dates when the
        context value is a DATE. Returns None for untaggable literals.
        """
        if kind == ValueKind.DATE and isinstance(raw, str):
            parsed = self._parse_date(raw)
            return ContextValue(kind=ValueKind.DATE, value=parsed) if parsed else None
        if kind == ValueKind.DATE and isinstance(raw, (datetime, date)):
            return ContextValue.of(raw)
        try:
            return ContextValue.of(raw)
        except ValueError:
            return None

    def _parse_date(self, raw: str) -> Optional[datetime]:
        try:
            return parse_iso(raw)
        except (ValueError, OverflowError):
            return None

    def explain(self, condition: Condition, context: RequestContext) -> Tuple[bool, Any]:
        """Evaluate and return the untagged context value seen, for diagnostics"""
        actual = context.get(condition.field)
        return self.evaluate(condition, context), actual.to_python() if actual else None
