from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from athlete_badges.achievements.catalog import BadgeCatalog
from athlete_badges.achievements.definitions import (
    Award,
    AwardOutcome,
    Badge,
    ScoreResult,
    Snapshot,
)
from athlete_badges.achievements.errors import (
    BadgeConfigInvalid,
    BadgeInactive,
    NotFound,
)
from athlete_badges.achievements.interface import MetricSource
from athlete_badges.achievements.ledger import AwardLedger
from athlete_badges.achievements.scorer import BadgeScorer
from athlete_badges.achievements.scorer import scorer as default_scorer
from athlete_badges.utils.tracing import trace_span

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BadgeFailure:
    badge_id: str
    reason: str
    problems: tuple[str, ...] = ()


@dataclass
class EvaluationReport:
    student_id: str
    outcomes: list[AwardOutcome] = field(default_factory=list)
    errors: list[BadgeFailure] = field(default_factory=list)

    @property
    def newly_awarded(self) -> list[str]:
        return [o.badge_id for o in self.outcomes if o.newly_awarded]


@dataclass
class ProgressReport:
    student_id: str
    results: list[ScoreResult] = field(default_factory=list)
    errors: list[BadgeFailure] = field(default_factory=list)
    badges: dict[str, Badge] = field(default_factory=dict)


@dataclass
class BatchReport:
    reports: list[EvaluationReport] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def students_evaluated(self) -> int:
        return len(self.reports)

    @property
    def total_new_badges(self) -> int:
        return sum(len(r.newly_awarded) for r in self.reports)


class BadgeEngine:
    '''
    Entry point for callers. `evaluate_all` is the only path that commits
    system awards; `get_progress` scores the same badges without writing.
    '''

    def __init__(
        self,
        metrics: MetricSource,
        catalog: BadgeCatalog,
        ledger: AwardLedger,
        scorer: BadgeScorer = default_scorer,
    ) -> None:
        self.metrics = metrics
        self.catalog = catalog
        self.ledger = ledger
        self.scorer = scorer

    def evaluate_all(self, student_id: str) -> EvaluationReport:
        with trace_span('badges.evaluate_all', {'student_id': student_id}) as span:
            badges, snapshot = self._load(student_id)
            report = EvaluationReport(student_id=student_id)

            for badge, result in self._score_each(badges, snapshot, report.errors):
                report.outcomes.append(
                    self.ledger.reconcile(student_id, badge.id, result)
                )

            span.set('badges', len(badges))
            span.set('awarded', len(report.newly_awarded))
            span.set('errors', len(report.errors))
            return report

    def evaluate_many(self, student_ids: Iterable[str]) -> BatchReport:
        '''Evaluate several students, continuing past per-student failures.'''
        batch = BatchReport()
        for student_id in student_ids:
            try:
                batch.reports.append(self.evaluate_all(student_id))
            except Exception as e:
                logger.error(f'Evaluation failed for student {student_id}: {e}')
                batch.failures[student_id] = str(e)
        logger.info(
            f'Evaluated {batch.students_evaluated} students, '
            f'{batch.total_new_badges} new badges, {len(batch.failures)} failures'
        )
        return batch

    def get_progress(self, student_id: str) -> ProgressReport:
        with trace_span('badges.get_progress', {'student_id': student_id}):
            badges, snapshot = self._load(student_id)
            report = ProgressReport(student_id=student_id)
            for badge, result in self._score_each(badges, snapshot, report.errors):
                report.badges[badge.id] = badge
                report.results.append(result)
            return report

    def get_earned(self, student_id: str) -> list[Award]:
        return self.ledger.active_awards(student_id)

    def get_history(self, student_id: str) -> list[Award]:
        return self.ledger.history(student_id)

    def manual_award(self, student_id: str, badge_id: str, coach_id: str) -> Award:
        with trace_span(
            'badges.manual_award', {'student_id': student_id, 'badge_id': badge_id}
        ):
            # Authorize before any existence check
            self.ledger.authorize(coach_id, student_id)
            self._require_student(student_id)
            badge = self.catalog.get_badge(badge_id)
            if badge is None:
                raise NotFound('badge', badge_id)
            if not badge.is_active:
                raise BadgeInactive(badge_id)
            return self.ledger.grant(student_id, badge_id, coach_id)

    def revoke(self, award_id: str, coach_id: str, reason: str) -> Award:
        with trace_span('badges.revoke', {'award_id': award_id}):
            return self.ledger.revoke(award_id, coach_id, reason)

    def clear_award(self, award_id: str, coach_id: str) -> None:
        with trace_span('badges.clear_award', {'award_id': award_id}):
            self.ledger.clear(award_id, coach_id)

    def _require_student(self, student_id: str) -> str:
        sport = self.metrics.get_sport(student_id)
        if sport is None:
            raise NotFound('student', student_id)
        return sport

    def _load(self, student_id: str) -> tuple[list[Badge], Snapshot]:
        sport = self._require_student(student_id)
        badges = [
            b
            for b in self.catalog.list_active_badges(sport)
            if b.applies_to(student_id)
        ]
        return badges, self.metrics.get_snapshot(student_id)

    def _score_each(
        self, badges: list[Badge], snapshot: Snapshot, errors: list[BadgeFailure]
    ) -> Iterator[tuple[Badge, ScoreResult]]:
        for badge in badges:
            # One bad badge definition must not block the others
            try:
                result = self._score(badge, snapshot)
            except BadgeConfigInvalid as e:
                logger.warning(str(e))
                errors.append(
                    BadgeFailure(badge.id, 'config_invalid', tuple(e.problems))
                )
                continue
            except Exception:
                logger.exception(f'Unexpected error scoring badge {badge.id}')
                errors.append(BadgeFailure(badge.id, 'unexpected_error'))
                continue
            yield badge, result

    def _score(self, badge: Badge, snapshot: Snapshot) -> ScoreResult:
        with trace_span('badges.score', {'badge_id': badge.id}) as span:
            if not badge.rules:
                raise BadgeConfigInvalid(badge.id, ['badge has no rules'])
            result = self.scorer.score(badge, snapshot)
            span.set('progress', result.progress_percent)
            span.set('earned', result.is_earned)
            return result
