import contextlib
import itertools
from dataclasses import dataclass, field, replace
from typing import Any, Iterator, Optional

import pytest

from athlete_badges.achievements.catalog import BadgeCatalog
from athlete_badges.achievements.definitions import Badge, Rule
from athlete_badges.achievements.engine import BadgeEngine
from athlete_badges.achievements.errors import Unauthorized
from athlete_badges.achievements.ledger import AwardLedger


@dataclass
class FakeDB:
    fetchone_results: list[Any] = field(default_factory=list)
    fetchall_results: list[Any] = field(default_factory=list)
    executed: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    queries: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def fetchone(self, query: str, params=None):
        self.queries.append((query, tuple(params or ())))
        if self.fetchone_results:
            return self.fetchone_results.pop(0)
        return None

    def fetchall(self, query: str, params=None):
        self.queries.append((query, tuple(params or ())))
        if self.fetchall_results:
            return self.fetchall_results.pop(0)
        return []

    def execute(self, query: str, params=None) -> None:
        self.executed.append((query, tuple(params or ())))

    def executemany(self, query: str, param_list) -> None:
        for params in param_list:
            self.executed.append((query, tuple(params)))

    @property
    def last_query(self) -> Optional[str]:
        return self.queries[-1][0] if self.queries else None

    @property
    def last_params(self) -> Optional[tuple[Any, ...]]:
        return self.queries[-1][1] if self.queries else None


class FakeDBManager:
    def __init__(self, db: FakeDB):
        self._db = db

    def __call__(self):
        return self._db


@contextlib.contextmanager
def patched_dbmanager(monkeypatch, target_module, db: FakeDB) -> Iterator[FakeDB]:
    monkeypatch.setattr(target_module, 'DBManager', FakeDBManager(db))
    yield db


@pytest.fixture()
def fake_db() -> FakeDB:
    return FakeDB()


class MemoryAwardStore:
    '''AwardStore keeping rows in a dict, same conditional semantics as Postgres.'''

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def _pair(self, student_id: str, badge_id: str) -> Optional[dict[str, Any]]:
        for row in self.rows.values():
            if row['student_id'] == student_id and row['badge_id'] == badge_id:
                return row
        return None

    def get(self, award_id):
        row = self.rows.get(str(award_id))
        return dict(row) if row else None

    def list_for_student(self, student_id, include_revoked=False):
        rows = [r for r in self.rows.values() if r['student_id'] == student_id]
        return [dict(r) for r in rows if include_revoked or not r['is_revoked']]

    def insert_if_absent(self, values):
        if self._pair(values['student_id'], values['badge_id']):
            return None
        award_id = f'award-{next(self._ids)}'
        row = {
            'id': award_id,
            'is_revoked': False,
            'revoked_at': None,
            'revoked_by': None,
            'revoke_reason': None,
            **values,
        }
        self.rows[award_id] = row
        return dict(row)

    def refresh_active(self, student_id, badge_id, progress, score):
        row = self._pair(student_id, badge_id)
        if not row or row['is_revoked']:
            return None
        row.update(progress=progress, score=score)
        return dict(row)

    def reinstate(self, values):
        row = self._pair(values['student_id'], values['badge_id'])
        if row is None:
            return self.insert_if_absent(values)
        if not row['is_revoked']:
            return None
        row.update(
            is_revoked=False,
            revoked_at=None,
            revoked_by=None,
            revoke_reason=None,
            awarded_by=values['awarded_by'],
            awarded_at=values['awarded_at'],
        )
        return dict(row)

    def mark_revoked(self, award_id, revoked_by, reason, revoked_at):
        row = self.rows.get(award_id)
        if not row or row['is_revoked']:
            return None
        row.update(
            is_revoked=True,
            revoked_at=revoked_at,
            revoked_by=revoked_by,
            revoke_reason=reason,
        )
        return dict(row)

    def delete_revoked(self, award_id):
        row = self.rows.get(award_id)
        if not row or not row['is_revoked']:
            return False
        del self.rows[award_id]
        return True


class FakeMetrics:
    def __init__(self) -> None:
        self.sports: dict[str, str] = {}
        self.snapshots: dict[str, dict[str, Any]] = {}

    def add(self, student_id: str, sport: str = 'CRICKET', **metrics: Any) -> None:
        self.sports[student_id] = sport
        self.snapshots[student_id] = dict(metrics)

    def get_sport(self, student_id):
        return self.sports.get(student_id)

    def get_snapshot(self, student_id):
        return dict(self.snapshots.get(student_id, {}))


class FakeBadgeSource:
    def __init__(self, badges: Optional[list[Badge]] = None) -> None:
        self.badges: dict[str, Badge] = {b.id: b for b in badges or []}
        self.list_calls = 0

    def list_active_badges(self, sport):
        self.list_calls += 1
        return [
            b
            for b in self.badges.values()
            if b.is_active and b.applies_to_sport(sport)
        ]

    def get_badge(self, badge_id):
        return self.badges.get(badge_id)


class FakeBadgeWriter:
    def __init__(self, source):
        self.source = source
        self.active_awards: dict[str, int] = {}
        self.deleted: list[str] = []

    def insert_badge(self, badge):
        badge_id = f'new-{len(self.source.badges) + 1}'
        created = replace(badge, id=badge_id)
        self.source.badges[badge_id] = created
        return created

    def set_active(self, badge_id, is_active):
        badge = self.source.badges.get(badge_id)
        if badge is None:
            return False
        self.source.badges[badge_id] = replace(badge, is_active=is_active)
        return True

    def delete_badge(self, badge_id):
        self.deleted.append(badge_id)
        self.source.badges.pop(badge_id, None)

    def count_active_awards(self, badge_id):
        return self.active_awards.get(badge_id, 0)


class CoachRoster:
    '''Authorizer double: coach -> set of student ids.'''

    def __init__(self, **students_by_coach: set[str]) -> None:
        self.students_by_coach = students_by_coach

    def check(self, coach_id, student_id):
        if student_id not in self.students_by_coach.get(coach_id, set()):
            raise Unauthorized(coach_id, student_id)


_rule_ids = itertools.count(1)


def make_rule(
    field_name: str = 'batting_average',
    operator: Any = 'gte',
    threshold: Any = 50,
    weight: Any = 1.0,
    is_required: bool = False,
) -> Rule:
    return Rule(
        id=f'rule-{next(_rule_ids)}',
        field_name=field_name,
        operator=operator,
        threshold=threshold,
        weight=weight,
        is_required=is_required,
    )


def make_badge(badge_id: str = 'b1', *rules: Rule, **overrides: Any) -> Badge:
    values: dict[str, Any] = {
        'id': badge_id,
        'name': f'Badge {badge_id}',
        'level': 'BRONZE',
        'sport': 'ALL',
        'rules': tuple(rules),
    }
    values.update(overrides)
    return Badge(**values)


@pytest.fixture()
def award_store() -> MemoryAwardStore:
    return MemoryAwardStore()


@pytest.fixture()
def metrics() -> FakeMetrics:
    return FakeMetrics()


@pytest.fixture()
def badge_source() -> FakeBadgeSource:
    return FakeBadgeSource()


@pytest.fixture()
def roster() -> CoachRoster:
    return CoachRoster(coach1={'s1', 's2'})


@pytest.fixture()
def ledger(award_store, roster) -> AwardLedger:
    return AwardLedger(award_store, roster)


@pytest.fixture()
def engine(metrics, badge_source, ledger) -> BadgeEngine:
    return BadgeEngine(metrics, BadgeCatalog(badge_source), ledger)
