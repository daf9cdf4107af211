from __future__ import annotations

import math
from typing import Iterable

from athlete_badges.achievements.definitions import (
    Badge,
    Operator,
    Rule,
    ScoreResult,
    Snapshot,
)
from athlete_badges.achievements.errors import BadgeConfigInvalid
from athlete_badges.achievements.evaluator import RuleEvaluator, as_number
from athlete_badges.achievements.evaluator import evaluator as default_evaluator


def rule_problems(rules: Iterable[Rule]) -> list[str]:
    problems: list[str] = []
    for rule in rules:
        label = f'rule {rule.id} ({rule.field_name or "?"})'
        if not rule.field_name:
            problems.append(f'{label}: missing field name')
        if Operator.parse(rule.operator) is None:
            problems.append(f'{label}: unknown operator {rule.operator!r}')
        if isinstance(rule.threshold, bool) or as_number(rule.threshold) is None:
            problems.append(f'{label}: threshold {rule.threshold!r} is not a number')
        weight = as_number(rule.weight)
        if isinstance(rule.weight, bool) or weight is None or weight <= 0:
            problems.append(f'{label}: weight {rule.weight!r} must be positive')
    return problems


def validate_badge(badge: Badge) -> None:
    '''Raise BadgeConfigInvalid if the badge can never be scored meaningfully.'''
    problems = rule_problems(badge.rules)
    if not badge.rules:
        problems.insert(0, 'badge has no rules')
    if problems:
        raise BadgeConfigInvalid(badge.id, problems)


def round_percent(value: float) -> int:
    # Half-up, so 62.5 -> 63 rather than banker's rounding to 62
    return int(math.floor(value + 0.5))


class BadgeScorer:
    '''
    Weighted progress over all rules, with required rules acting as a gate:
    a badge is earned only when every required rule passes and the weighted
    progress reaches 100.
    '''

    def __init__(self, evaluator: RuleEvaluator = default_evaluator) -> None:
        self.evaluator = evaluator

    def score(self, badge: Badge, snapshot: Snapshot) -> ScoreResult:
        problems = rule_problems(badge.rules)
        if problems:
            raise BadgeConfigInvalid(badge.id, problems)

        results = tuple(
            self.evaluator.evaluate(rule, snapshot) for rule in badge.rules
        )

        weighted_sum = 0.0
        weight_total = 0.0
        gate_open = True
        for rule, result in zip(badge.rules, results):
            weight = float(rule.weight)
            weighted_sum += weight * result.credit
            weight_total += weight
            if rule.is_required and not result.satisfied:
                gate_open = False

        progress = 0
        if weight_total > 0:
            progress = round_percent(100 * weighted_sum / weight_total)
            progress = min(100, max(0, progress))

        return ScoreResult(
            badge_id=badge.id,
            progress_percent=progress,
            is_earned=bool(badge.rules) and gate_open and progress >= 100,
            weighted_sum=weighted_sum,
            per_rule=results,
        )


scorer = BadgeScorer()
