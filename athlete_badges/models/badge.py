import logging
from collections import defaultdict
from typing import Any, Iterable, Optional

from athlete_badges.achievements.definitions import (
    Badge,
    CoachOrigin,
    Operator,
    Rule,
    origin_from_columns,
)
from athlete_badges.database.db_manager import DBManager
from athlete_badges.models.base import BaseModel
from athlete_badges.models.student_badge import StudentBadge
from athlete_badges.utils.constants import ALL_SPORTS

logger = logging.getLogger(__name__)

_BADGE_SELECT = (
    'SELECT b.*, c.name AS category_name '
    'FROM badges b JOIN badge_categories c ON c.id = b.category_id'
)


def _operator_code(rule: Rule) -> str:
    parsed = Operator.parse(rule.operator)
    return parsed.value if parsed else str(rule.operator)


class BadgeCategory(BaseModel):
    table = 'badge_categories'

    @classmethod
    def ensure(cls, db: DBManager, name: str) -> str:
        row = db.fetchone(
            'INSERT INTO badge_categories (name, description) VALUES (%s, %s) '
            'ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name RETURNING id',
            (name, f'{name} badges'),
        )
        assert row is not None
        return str(row['id'])


class BadgeRuleRecord(BaseModel):
    table = 'badge_rules'

    @classmethod
    def for_badges(cls, db: DBManager, badge_ids: list[str]) -> dict[str, list[Rule]]:
        by_badge: dict[str, list[Rule]] = defaultdict(list)
        if not badge_ids:
            return by_badge
        rows = db.fetchall(
            'SELECT * FROM badge_rules WHERE badge_id = ANY(%s) ORDER BY created_at',
            (badge_ids,),
        )
        for row in rows:
            by_badge[str(row['badge_id'])].append(Rule.from_row(row))
        return by_badge


class BadgeTargetStudent(BaseModel):
    table = 'badge_target_students'

    @classmethod
    def for_badges(cls, db: DBManager, badge_ids: list[str]) -> dict[str, set[str]]:
        by_badge: dict[str, set[str]] = defaultdict(set)
        if not badge_ids:
            return by_badge
        rows = db.fetchall(
            'SELECT badge_id, student_id FROM badge_target_students '
            'WHERE badge_id = ANY(%s)',
            (badge_ids,),
        )
        for row in rows:
            by_badge[str(row['badge_id'])].add(str(row['student_id']))
        return by_badge


class BadgeRecord(BaseModel):
    '''Postgres-backed badge catalog; implements BadgeSource and BadgeWriter.'''

    table = 'badges'

    @classmethod
    def list_active_badges(cls, sport: Optional[str]) -> list[Badge]:
        sports = [ALL_SPORTS] + ([sport.upper()] if sport else [])
        with DBManager() as db:
            rows = db.fetchall(
                f'{_BADGE_SELECT} WHERE b.is_active AND UPPER(b.sport) = ANY(%s) '
                'ORDER BY c.name, b.level, b.name',
                (sports,),
            )
            return cls._hydrate(db, rows)

    @classmethod
    def get_badge(cls, badge_id: str) -> Optional[Badge]:
        with DBManager() as db:
            rows = db.fetchall(f'{_BADGE_SELECT} WHERE b.id = %s', (badge_id,))
            badges = cls._hydrate(db, rows)
        return badges[0] if badges else None

    @classmethod
    def insert_badge(cls, badge: Badge) -> Badge:
        coach_id = (
            badge.origin.coach_id if isinstance(badge.origin, CoachOrigin) else None
        )
        with DBManager() as db:
            category_id = BadgeCategory.ensure(db, badge.category)
            sql, params = cls.insert_sql(
                {
                    'name': badge.name,
                    'description': badge.description,
                    'motivational_text': badge.motivational_text,
                    'level': badge.level,
                    'icon': badge.icon,
                    'sport': badge.sport,
                    'category_id': category_id,
                    'is_active': badge.is_active,
                    'origin': badge.origin.kind,
                    'author_coach_id': coach_id,
                },
                'RETURNING id',
            )
            row = db.fetchone(sql, params)
            assert row is not None
            badge_id = str(row['id'])

            db.executemany(
                'INSERT INTO badge_rules (badge_id, field_name, operator, threshold, '
                'weight, is_required, description) '
                'VALUES (%s, %s, %s, %s, %s, %s, %s)',
                [
                    (
                        badge_id,
                        r.field_name,
                        _operator_code(r),
                        r.threshold,
                        r.weight,
                        r.is_required,
                        r.description,
                    )
                    for r in badge.rules
                ],
            )
            db.executemany(
                'INSERT INTO badge_target_students (badge_id, student_id) '
                'VALUES (%s, %s)',
                [(badge_id, s) for s in sorted(badge.target_student_ids)],
            )

        created = cls.get_badge(badge_id)
        assert created is not None
        return created

    @classmethod
    def set_active(cls, badge_id: str, is_active: bool) -> bool:
        with DBManager() as db:
            row = db.fetchone(
                'UPDATE badges SET is_active = %s WHERE id = %s RETURNING id',
                (is_active, badge_id),
            )
        return row is not None

    @classmethod
    def delete_badge(cls, badge_id: str) -> None:
        with DBManager() as db:
            # Only revoked awards can remain at this point; active ones block deletion
            db.execute(
                'DELETE FROM student_badges WHERE badge_id = %s AND is_revoked',
                (badge_id,),
            )
            db.execute('DELETE FROM badge_rules WHERE badge_id = %s', (badge_id,))
            db.execute(
                'DELETE FROM badge_target_students WHERE badge_id = %s', (badge_id,)
            )
            db.execute('DELETE FROM badges WHERE id = %s', (badge_id,))

    @classmethod
    def count_active_awards(cls, badge_id: str) -> int:
        return StudentBadge.count_active_for_badge(badge_id)

    @classmethod
    def _hydrate(cls, db: DBManager, rows: Iterable[dict[str, Any]]) -> list[Badge]:
        rows = list(rows)
        ids = [str(r['id']) for r in rows]
        rules = BadgeRuleRecord.for_badges(db, ids)
        targets = BadgeTargetStudent.for_badges(db, ids)

        badges: list[Badge] = []
        for row in rows:
            badge_id = str(row['id'])
            try:
                origin = origin_from_columns(
                    row.get('origin'), row.get('author_coach_id')
                )
            except ValueError:
                logger.warning(f'Badge {badge_id} has an inconsistent origin; skipping')
                continue
            badges.append(
                Badge(
                    id=badge_id,
                    name=row['name'],
                    level=row['level'],
                    sport=row['sport'],
                    category=row.get('category_name') or '',
                    is_active=bool(row['is_active']),
                    origin=origin,
                    rules=tuple(rules.get(badge_id, ())),
                    target_student_ids=frozenset(targets.get(badge_id, ())),
                    description=row.get('description') or '',
                    motivational_text=row.get('motivational_text') or '',
                    icon=row.get('icon') or '',
                )
            )
        return badges
