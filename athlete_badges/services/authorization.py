import logging

from athlete_badges.achievements.errors import Unauthorized
from athlete_badges.models.student import Student

logger = logging.getLogger(__name__)


class AssignedCoachAuthorizer:
    '''A coach may act on a student only if they are the student's assigned coach.'''

    def check(self, coach_id: str, student_id: str) -> None:
        assigned = Student.coach_of(student_id)
        if assigned is None or assigned != str(coach_id):
            logger.info(f'Denied coach {coach_id} access to student {student_id}')
            raise Unauthorized(str(coach_id), student_id)
