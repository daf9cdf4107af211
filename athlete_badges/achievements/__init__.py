from athlete_badges.achievements.catalog import BadgeCatalog, BadgeDraft
from athlete_badges.achievements.engine import BadgeEngine
from athlete_badges.achievements.ledger import AwardLedger
from athlete_badges.achievements.scorer import BadgeScorer

__all__ = ['AwardLedger', 'BadgeCatalog', 'BadgeDraft', 'BadgeEngine', 'BadgeScorer']
