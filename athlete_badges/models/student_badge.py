from datetime import datetime
from typing import Any, Optional

from athlete_badges.database.db_manager import DBManager
from athlete_badges.models.base import BaseModel


class StudentBadge(BaseModel):
    '''
    Award rows, one per (student_id, badge_id). Each classmethod is a single
    conditional statement, so the UNIQUE pair constraint and row locks in
    Postgres serialize concurrent writers across processes.
    '''

    table = 'student_badges'

    @classmethod
    def list_for_student(
        cls, student_id: str, include_revoked: bool = False
    ) -> list[dict[str, Any]]:
        where = 'student_id = %s' if include_revoked else (
            'student_id = %s AND NOT is_revoked'
        )
        return cls.get_many(where, (student_id,), order_by='awarded_at DESC')

    @classmethod
    def insert_if_absent(cls, values: dict[str, Any]) -> Optional[dict[str, Any]]:
        sql, params = cls.insert_sql(
            values, 'ON CONFLICT (student_id, badge_id) DO NOTHING RETURNING *'
        )
        with DBManager() as db:
            return db.fetchone(sql, params)

    @classmethod
    def refresh_active(
        cls, student_id: str, badge_id: str, progress: int, score: float
    ) -> Optional[dict[str, Any]]:
        with DBManager() as db:
            return db.fetchone(
                'UPDATE student_badges SET progress = %s, score = %s '
                'WHERE student_id = %s AND badge_id = %s AND NOT is_revoked '
                'RETURNING *',
                (progress, score, student_id, badge_id),
            )

    @classmethod
    def reinstate(cls, values: dict[str, Any]) -> Optional[dict[str, Any]]:
        # The WHERE on the conflict branch leaves an active row untouched,
        # which makes RETURNING come back empty
        sql, params = cls.insert_sql(
            values,
            'ON CONFLICT (student_id, badge_id) DO UPDATE SET '
            'is_revoked = FALSE, revoked_at = NULL, revoked_by = NULL, '
            'revoke_reason = NULL, awarded_by = EXCLUDED.awarded_by, '
            'awarded_at = EXCLUDED.awarded_at '
            'WHERE student_badges.is_revoked '
            'RETURNING *',
        )
        with DBManager() as db:
            return db.fetchone(sql, params)

    @classmethod
    def mark_revoked(
        cls, award_id: str, revoked_by: str, reason: str, revoked_at: datetime
    ) -> Optional[dict[str, Any]]:
        with DBManager() as db:
            return db.fetchone(
                'UPDATE student_badges SET is_revoked = TRUE, revoked_at = %s, '
                'revoked_by = %s, revoke_reason = %s '
                'WHERE id = %s AND NOT is_revoked RETURNING *',
                (revoked_at, revoked_by, reason, award_id),
            )

    @classmethod
    def delete_revoked(cls, award_id: str) -> bool:
        with DBManager() as db:
            row = db.fetchone(
                'DELETE FROM student_badges WHERE id = %s AND is_revoked '
                'RETURNING id',
                (award_id,),
            )
        return row is not None

    @classmethod
    def count_active_for_badge(cls, badge_id: str) -> int:
        with DBManager() as db:
            row = db.fetchone(
                'SELECT COUNT(*) AS n FROM student_badges '
                'WHERE badge_id = %s AND NOT is_revoked',
                (badge_id,),
            )
        return int(row['n']) if row else 0
