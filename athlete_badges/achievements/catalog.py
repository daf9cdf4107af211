from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from athlete_badges.achievements.definitions import (
    Badge,
    CoachOrigin,
    Origin,
    Rule,
    SystemOrigin,
)
from athlete_badges.achievements.errors import (
    BadgeInUse,
    NotBadgeAuthor,
    NotFound,
)
from athlete_badges.achievements.interface import BadgeSource, BadgeWriter
from athlete_badges.achievements.scorer import validate_badge
from athlete_badges.utils.constants import (
    ALL_SPORTS,
    BADGE_LEVELS,
    CUSTOM_CATEGORY,
    DEFAULT_BADGE_ICON,
    DEFAULT_CATEGORY,
    DEFAULT_MOTIVATIONAL_TEXT,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BadgeDraft:
    name: str
    level: str
    rules: tuple[Rule, ...]
    sport: str = ALL_SPORTS
    category: Optional[str] = None
    origin: Origin = field(default_factory=SystemOrigin)
    target_student_ids: Iterable[str] = ()
    description: str = ''
    motivational_text: str = ''
    icon: str = ''

    def to_badge(self) -> Badge:
        level = (self.level or 'BRONZE').upper()
        if level not in BADGE_LEVELS:
            raise ValueError(f'Unknown badge level {self.level!r}')
        category = self.category
        if not category:
            coach_made = isinstance(self.origin, CoachOrigin)
            category = CUSTOM_CATEGORY if coach_made else DEFAULT_CATEGORY
        return Badge(
            id='',
            name=self.name.strip(),
            level=level,
            sport=(self.sport or ALL_SPORTS).upper(),
            category=category,
            is_active=True,
            origin=self.origin,
            rules=tuple(self.rules),
            target_student_ids=frozenset(str(s) for s in self.target_student_ids),
            description=self.description,
            motivational_text=self.motivational_text or DEFAULT_MOTIVATIONAL_TEXT,
            icon=self.icon or DEFAULT_BADGE_ICON,
        )


class BadgeCatalog:
    '''
    Read-through cache of active badges per sport over a badge store.

    Every edit made through the catalog invalidates the cache; edits made
    elsewhere must call `invalidate()` themselves. With a positive `ttl` cached
    listings also expire on their own.
    '''

    def __init__(
        self, source: BadgeSource, writer: Optional[BadgeWriter] = None, ttl: float = 0
    ) -> None:
        self.source = source
        self.writer = writer
        self.ttl = ttl
        self._lock = threading.Lock()
        self._by_sport: dict[str, tuple[float, list[Badge]]] = {}
        # Bumped by invalidate(); a fetch that straddles a bump is not cached
        self._generation = 0

    def list_active_badges(self, sport: Optional[str]) -> list[Badge]:
        key = (sport or ALL_SPORTS).upper()
        now = time.monotonic()
        with self._lock:
            cached = self._by_sport.get(key)
            if cached and (self.ttl <= 0 or now - cached[0] < self.ttl):
                return list(cached[1])
            generation = self._generation

        badges = [
            b
            for b in self.source.list_active_badges(sport)
            if b.is_active and b.applies_to_sport(sport)
        ]
        with self._lock:
            if generation == self._generation:
                self._by_sport[key] = (now, badges)
        logger.debug(f'Loaded {len(badges)} active badges for sport {key}')
        return list(badges)

    def get_badge(self, badge_id: str) -> Optional[Badge]:
        return self.source.get_badge(badge_id)

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1
            self._by_sport.clear()

    def create_badge(self, draft: BadgeDraft) -> Badge:
        badge = draft.to_badge()
        validate_badge(badge)
        created = self._require_writer().insert_badge(badge)
        self.invalidate()
        logger.info(f'Created badge {created.id} ({created.name})')
        return created

    def set_active(self, badge_id: str, is_active: bool) -> Badge:
        '''Soft enable/disable. Existing awards are left untouched.'''
        if not self._require_writer().set_active(badge_id, is_active):
            raise NotFound('badge', badge_id)
        self.invalidate()
        badge = self.source.get_badge(badge_id)
        if badge is None:
            raise NotFound('badge', badge_id)
        return replace(badge, is_active=is_active)

    def delete_badge(self, badge_id: str, coach_id: str) -> None:
        '''Hard delete, limited to the authoring coach and unawarded badges.'''
        writer = self._require_writer()
        badge = self.source.get_badge(badge_id)
        if badge is None:
            raise NotFound('badge', badge_id)
        if not badge.is_coach_authored or badge.origin.coach_id != str(coach_id):
            raise NotBadgeAuthor(badge_id, str(coach_id))
        active = writer.count_active_awards(badge_id)
        if active:
            raise BadgeInUse(badge_id, active)

        writer.delete_badge(badge_id)
        self.invalidate()
        logger.info(f'Coach {coach_id} deleted badge {badge_id}')

    def _require_writer(self) -> BadgeWriter:
        if self.writer is None:
            raise RuntimeError('BadgeCatalog was built without a writer')
        return self.writer
