from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from athlete_badges.achievements.definitions import (
    Award,
    AwardOutcome,
    OutcomeStatus,
    ScoreResult,
)
from athlete_badges.achievements.errors import (
    AlreadyAwarded,
    AlreadyRevoked,
    AwardStillActive,
    NotFound,
)
from athlete_badges.achievements.interface import Authorizer, AwardStore
from athlete_badges.utils.constants import SYSTEM_ACTOR
from athlete_badges.utils.tracing import annotate

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AwardLedger:
    '''
    Owns the award lifecycle for (student, badge) pairs.

    Automatic reconciliation only ever creates a first award or refreshes the
    progress of an active one. Revocation is sticky: a revoked pair comes back
    only through `manual_award`, or after `clear` removes the revoked record.
    '''

    def __init__(self, store: AwardStore, authorizer: Optional[Authorizer] = None):
        self.store = store
        self.authorizer = authorizer

    def reconcile(
        self, student_id: str, badge_id: str, result: ScoreResult
    ) -> AwardOutcome:
        progress = result.progress_percent

        if not result.is_earned:
            row = self.store.refresh_active(
                student_id, badge_id, progress, result.weighted_sum
            )
            status = OutcomeStatus.PROGRESS_UPDATED if row else OutcomeStatus.NOT_EARNED
            return self._outcome(student_id, badge_id, status, progress, row)

        row = self.store.insert_if_absent(
            {
                'student_id': student_id,
                'badge_id': badge_id,
                'progress': progress,
                'score': result.weighted_sum,
                'awarded_by': SYSTEM_ACTOR,
                'awarded_at': _now(),
            }
        )
        if row:
            logger.info(f'Awarded badge {badge_id} to student {student_id}')
            return self._outcome(
                student_id, badge_id, OutcomeStatus.AWARDED, progress, row
            )

        row = self.store.refresh_active(
            student_id, badge_id, progress, result.weighted_sum
        )
        if row:
            return self._outcome(
                student_id, badge_id, OutcomeStatus.REAFFIRMED, progress, row
            )

        logger.debug(
            f'Badge {badge_id} earned by student {student_id} but revoked; skipping'
        )
        return self._outcome(
            student_id, badge_id, OutcomeStatus.REVOKED_SKIPPED, progress, None
        )

    def authorize(self, coach_id: str, student_id: str) -> None:
        if self.authorizer is not None:
            self.authorizer.check(coach_id, student_id)

    def manual_award(self, student_id: str, badge_id: str, coach_id: str) -> Award:
        self.authorize(coach_id, student_id)
        return self.grant(student_id, badge_id, coach_id)

    def grant(self, student_id: str, badge_id: str, coach_id: str) -> Award:
        '''Coach award without the authorization check; callers authorize first.'''
        row = self.store.reinstate(
            {
                'student_id': student_id,
                'badge_id': badge_id,
                'progress': 100,
                'score': 0.0,
                'awarded_by': str(coach_id),
                'awarded_at': _now(),
            }
        )
        if not row:
            raise AlreadyAwarded(student_id, badge_id)

        award = Award.from_row(row)
        annotate('award_id', award.id)
        logger.info(
            f'Coach {coach_id} awarded badge {badge_id} to student {student_id}'
        )
        return award

    def revoke(self, award_id: str, coach_id: str, reason: str = '') -> Award:
        existing = self.store.get(award_id)
        if not existing:
            raise NotFound('award', award_id)
        annotate('student_id', str(existing['student_id']))
        self.authorize(coach_id, str(existing['student_id']))

        row = self.store.mark_revoked(award_id, str(coach_id), reason.strip(), _now())
        if not row:
            # Lost a race against another revoke, or was never active
            raise AlreadyRevoked(award_id)

        logger.info(f'Coach {coach_id} revoked award {award_id}: {reason!r}')
        return Award.from_row(row)

    def clear(self, award_id: str, coach_id: str) -> None:
        '''Delete a revoked award so the pair is eligible for system award again.'''
        existing = self.store.get(award_id)
        if not existing:
            raise NotFound('award', award_id)
        annotate('student_id', str(existing['student_id']))
        self.authorize(coach_id, str(existing['student_id']))
        if not existing.get('is_revoked'):
            raise AwardStillActive(award_id)

        if not self.store.delete_revoked(award_id):
            raise AwardStillActive(award_id)
        logger.info(f'Coach {coach_id} cleared revoked award {award_id}')

    def active_awards(self, student_id: str) -> list[Award]:
        awards = map(Award.from_row, self.store.list_for_student(student_id))
        return [a for a in awards if a.is_active]

    def history(self, student_id: str) -> list[Award]:
        rows = self.store.list_for_student(student_id, include_revoked=True)
        return [Award.from_row(r) for r in rows]

    @staticmethod
    def _outcome(
        student_id: str,
        badge_id: str,
        status: OutcomeStatus,
        progress: int,
        row: Optional[dict],
    ) -> AwardOutcome:
        return AwardOutcome(
            student_id=student_id,
            badge_id=badge_id,
            status=status,
            progress=progress,
            award=Award.from_row(row) if row else None,
        )
