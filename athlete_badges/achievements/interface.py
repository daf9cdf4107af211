from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from athlete_badges.achievements.definitions import (
    Badge,
    MetricValue,
    Rule,
    Snapshot,
)


class CreditPolicy(Protocol):
    def __call__(
        self, rule: Rule, value: Optional[MetricValue], satisfied: bool
    ) -> float:
        '''Fraction of the rule's weight credited, expected within 0..1.'''
        pass


@runtime_checkable
class MetricSource(Protocol):
    def get_sport(self, student_id: str) -> Optional[str]:
        '''Sport code of the student, or None if the student does not exist.'''
        pass

    def get_snapshot(self, student_id: str) -> Snapshot:
        pass


@runtime_checkable
class BadgeSource(Protocol):
    def list_active_badges(self, sport: Optional[str]) -> list[Badge]:
        '''Active badges for the sport, including badges scoped to every sport.'''
        pass

    def get_badge(self, badge_id: str) -> Optional[Badge]:
        pass


@runtime_checkable
class AwardStore(Protocol):
    '''
    Durable storage for student-badge awards. One row per (student, badge) pair;
    every method is a single conditional statement so concurrent writers to the
    same pair are serialized by the store, not by the caller.
    '''

    def get(self, award_id: Any) -> Optional[dict[str, Any]]:
        pass

    def list_for_student(
        self, student_id: str, include_revoked: bool = False
    ) -> list[dict[str, Any]]:
        pass

    def insert_if_absent(self, values: dict[str, Any]) -> Optional[dict[str, Any]]:
        '''Insert unless the pair has any record; None when a record exists.'''
        pass

    def refresh_active(
        self, student_id: str, badge_id: str, progress: int, score: float
    ) -> Optional[dict[str, Any]]:
        '''Update progress of the pair's active record; None if none is active.'''
        pass

    def reinstate(self, values: dict[str, Any]) -> Optional[dict[str, Any]]:
        '''Insert, or reactivate a revoked record; None if the pair is active.'''
        pass

    def mark_revoked(
        self, award_id: str, revoked_by: str, reason: str, revoked_at: datetime
    ) -> Optional[dict[str, Any]]:
        '''Revoke an active record; None if missing or already revoked.'''
        pass

    def delete_revoked(self, award_id: str) -> bool:
        pass


@runtime_checkable
class Authorizer(Protocol):
    def check(self, coach_id: str, student_id: str) -> None:
        '''Raise Unauthorized when the coach may not act on the student.'''
        pass


@runtime_checkable
class BadgeWriter(Protocol):
    def insert_badge(self, badge: Badge) -> Badge:
        '''Persist a new badge with its rules and targets; returns it with ids.'''
        pass

    def set_active(self, badge_id: str, is_active: bool) -> bool:
        pass

    def delete_badge(self, badge_id: str) -> None:
        '''Remove the badge, its rules, targets and any revoked awards.'''
        pass

    def count_active_awards(self, badge_id: str) -> int:
        pass
