from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union

from athlete_badges.utils.constants import ALL_SPORTS, SYSTEM_ACTOR

MetricValue = Union[int, float, bool]
Snapshot = Mapping[str, MetricValue]


class Operator(str, Enum):
    GT = 'gt'
    GTE = 'gte'
    LT = 'lt'
    LTE = 'lte'
    EQ = 'eq'

    @classmethod
    def parse(cls, raw: Any) -> Optional['Operator']:
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class SystemOrigin:
    @property
    def kind(self) -> str:
        return 'system'


@dataclass(frozen=True)
class CoachOrigin:
    coach_id: str

    @property
    def kind(self) -> str:
        return 'coach'


Origin = Union[SystemOrigin, CoachOrigin]


def origin_from_columns(kind: Optional[str], coach_id: Optional[Any]) -> Origin:
    if kind == 'coach':
        if coach_id is None:
            raise ValueError('coach-authored badge without author_coach_id')
        return CoachOrigin(coach_id=str(coach_id))
    return SystemOrigin()


@dataclass(frozen=True)
class Rule:
    id: str
    field_name: str
    # Kept raw so a bad stored value surfaces as a config error, not a load failure
    operator: Any
    threshold: Any
    weight: float = 1.0
    is_required: bool = False
    description: str = ''

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Rule':
        return cls(
            id=str(row['id']),
            field_name=row['field_name'],
            operator=row['operator'],
            threshold=row['threshold'],
            weight=row.get('weight', 1.0),
            is_required=bool(row.get('is_required', False)),
            description=row.get('description') or '',
        )


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    level: str
    sport: str = ALL_SPORTS
    category: str = ''
    is_active: bool = True
    origin: Origin = field(default_factory=SystemOrigin)
    rules: tuple[Rule, ...] = ()
    target_student_ids: frozenset[str] = frozenset()
    description: str = ''
    motivational_text: str = ''
    icon: str = ''

    @property
    def is_coach_authored(self) -> bool:
        return isinstance(self.origin, CoachOrigin)

    def applies_to_sport(self, sport: Optional[str]) -> bool:
        if self.sport.upper() == ALL_SPORTS:
            return True
        return sport is not None and self.sport.upper() == sport.upper()

    def applies_to(self, student_id: str) -> bool:
        return not self.target_student_ids or student_id in self.target_student_ids


@dataclass(frozen=True)
class RuleResult:
    rule_id: str
    field_name: str
    satisfied: bool
    credit: float
    actual: Optional[MetricValue] = None


@dataclass(frozen=True)
class ScoreResult:
    badge_id: str
    progress_percent: int
    is_earned: bool
    weighted_sum: float = 0.0
    per_rule: tuple[RuleResult, ...] = ()


@dataclass(frozen=True)
class Award:
    id: str
    student_id: str
    badge_id: str
    progress: int
    awarded_at: datetime
    awarded_by: str
    score: float = 0.0
    is_revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None
    revoke_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return not self.is_revoked

    @property
    def is_system_award(self) -> bool:
        return self.awarded_by == SYSTEM_ACTOR

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Award':
        return cls(
            id=str(row['id']),
            student_id=str(row['student_id']),
            badge_id=str(row['badge_id']),
            progress=int(row.get('progress') or 0),
            score=float(row.get('score') or 0.0),
            awarded_at=row['awarded_at'],
            awarded_by=str(row['awarded_by']),
            is_revoked=bool(row.get('is_revoked', False)),
            revoked_at=row.get('revoked_at'),
            revoked_by=row.get('revoked_by'),
            revoke_reason=row.get('revoke_reason'),
        )


class OutcomeStatus(str, Enum):
    AWARDED = 'awarded'
    REAFFIRMED = 'reaffirmed'
    PROGRESS_UPDATED = 'progress_updated'
    NOT_EARNED = 'not_earned'
    REVOKED_SKIPPED = 'revoked_skipped'


@dataclass(frozen=True)
class AwardOutcome:
    student_id: str
    badge_id: str
    status: OutcomeStatus
    progress: int
    award: Optional[Award] = None

    @property
    def newly_awarded(self) -> bool:
        return self.status is OutcomeStatus.AWARDED
