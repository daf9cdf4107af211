from typing import Optional

from athlete_badges.achievements.catalog import BadgeCatalog
from athlete_badges.achievements.engine import BadgeEngine
from athlete_badges.achievements.interface import Authorizer
from athlete_badges.achievements.ledger import AwardLedger
from athlete_badges.models.badge import BadgeRecord
from athlete_badges.models.student import Student
from athlete_badges.models.student_badge import StudentBadge
from athlete_badges.services.authorization import AssignedCoachAuthorizer
from athlete_badges.utils.env import Settings, get_settings


def build_engine(
    settings: Optional[Settings] = None, authorizer: Optional[Authorizer] = None
) -> BadgeEngine:
    '''Wire the engine to the Postgres-backed sources.'''
    settings = settings or get_settings()
    catalog = BadgeCatalog(BadgeRecord, writer=BadgeRecord, ttl=settings.catalog_ttl)
    ledger = AwardLedger(StudentBadge, authorizer or AssignedCoachAuthorizer())
    return BadgeEngine(metrics=Student, catalog=catalog, ledger=ledger)
