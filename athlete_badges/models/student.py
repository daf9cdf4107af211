from types import MappingProxyType
from typing import Any, Mapping, Optional

from athlete_badges.database.db_manager import DBManager
from athlete_badges.models.base import BaseModel
from athlete_badges.utils.constants import NON_METRIC_COLUMNS


def snapshot_from_row(row: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    '''Metric view of a skills row. NULL columns are left out, not zeroed.'''
    if not row:
        return MappingProxyType({})
    metrics = {
        name: value
        for name, value in row.items()
        if name not in NON_METRIC_COLUMNS
        and isinstance(value, (int, float))  # bool is an int
    }
    return MappingProxyType(metrics)


class StudentSkills(BaseModel):
    table = 'student_skills'
    pk = 'student_id'


class Student(BaseModel):
    '''Read-only view of the student profile; implements MetricSource.'''

    table = 'students'

    @classmethod
    def get_sport(cls, student_id: str) -> Optional[str]:
        with DBManager() as db:
            row = db.fetchone('SELECT sport FROM students WHERE id = %s', (student_id,))
        if not row:
            return None
        return str(row['sport']).upper()

    @classmethod
    def get_snapshot(cls, student_id: str) -> Mapping[str, Any]:
        return snapshot_from_row(StudentSkills.get(student_id))

    @classmethod
    def coach_of(cls, student_id: str) -> Optional[str]:
        with DBManager() as db:
            row = db.fetchone(
                'SELECT coach_id FROM students WHERE id = %s', (student_id,)
            )
        if not row or row['coach_id'] is None:
            return None
        return str(row['coach_id'])

    @classmethod
    def ids_with_skills(cls, coach_id: Optional[str] = None) -> list[str]:
        query = (
            'SELECT s.id FROM students s '
            'JOIN student_skills k ON k.student_id = s.id'
        )
        params: tuple[Any, ...] = ()
        if coach_id is not None:
            query += ' WHERE s.coach_id = %s'
            params = (coach_id,)
        with DBManager() as db:
            rows = db.fetchall(query + ' ORDER BY s.id', params)
        return [str(r['id']) for r in rows]
