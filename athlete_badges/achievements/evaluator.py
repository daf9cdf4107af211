from __future__ import annotations

import logging
import math
import operator as op
from typing import Any, Callable, Optional

from athlete_badges.achievements.definitions import (
    MetricValue,
    Operator,
    Rule,
    RuleResult,
    Snapshot,
)
from athlete_badges.achievements.interface import CreditPolicy

logger = logging.getLogger(__name__)

_COMPARATORS: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.GT: op.gt,
    Operator.GTE: op.ge,
    Operator.LT: op.lt,
    Operator.LTE: op.le,
    Operator.EQ: op.eq,
}


def binary_credit(rule: Rule, value: Optional[MetricValue], satisfied: bool) -> float:
    return 1.0 if satisfied else 0.0


def as_number(raw: Any) -> Optional[float | int]:
    '''Numeric view of a stored value, or None when it is not a finite number.'''
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, (int, float)):
        return raw if math.isfinite(raw) else None
    return None


class RuleEvaluator:
    '''
    Decides one rule against one snapshot. Total: anything it cannot make sense
    of (missing metric, unknown operator, non-numeric value or threshold) is an
    unsatisfied rule with zero credit.
    '''

    def __init__(self, credit_policy: CreditPolicy = binary_credit) -> None:
        self._credit_policy = credit_policy

    def evaluate(self, rule: Rule, snapshot: Snapshot) -> RuleResult:
        value = snapshot.get(rule.field_name)
        operands = self._operands(rule, value)
        if operands is None:
            # Missing or unusable data never earns credit, whatever the policy
            return RuleResult(
                rule_id=rule.id,
                field_name=rule.field_name,
                satisfied=False,
                credit=0.0,
                actual=value,
            )

        operator, actual, threshold = operands
        satisfied = bool(_COMPARATORS[operator](actual, threshold))
        return RuleResult(
            rule_id=rule.id,
            field_name=rule.field_name,
            satisfied=satisfied,
            credit=self._credit(rule, value, satisfied),
            actual=value,
        )

    def _operands(
        self, rule: Rule, value: Optional[MetricValue]
    ) -> Optional[tuple[Operator, float | int, float | int]]:
        if value is None:
            return None
        operator = Operator.parse(rule.operator)
        actual = as_number(value)
        threshold = as_number(rule.threshold)
        if operator is None or actual is None or threshold is None:
            return None
        return operator, actual, threshold

    def _credit(
        self, rule: Rule, value: Optional[MetricValue], satisfied: bool
    ) -> float:
        try:
            credit = float(self._credit_policy(rule, value, satisfied))
        except Exception:
            logger.warning(
                f'Credit policy failed for rule {rule.id} ({rule.field_name})',
                exc_info=True,
            )
            return 0.0
        if not math.isfinite(credit):
            return 0.0
        return min(1.0, max(0.0, credit))


evaluator = RuleEvaluator()
