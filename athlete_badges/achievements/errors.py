from __future__ import annotations


class AchievementError(Exception):
    '''Base class for errors surfaced to callers of the badge engine.'''


class BadgeConfigInvalid(AchievementError):
    def __init__(self, badge_id: str, problems: list[str]):
        self.badge_id = badge_id
        self.problems = list(problems)
        super().__init__(f'Badge {badge_id} is misconfigured: {"; ".join(problems)}')


class NotFound(AchievementError):
    def __init__(self, kind: str, ident: str):
        self.kind = kind
        self.ident = ident
        super().__init__(f'{kind} {ident} not found')


class AlreadyAwarded(AchievementError):
    def __init__(self, student_id: str, badge_id: str):
        self.student_id = student_id
        self.badge_id = badge_id
        super().__init__(f'Badge {badge_id} is already awarded to student {student_id}')


class AlreadyRevoked(AchievementError):
    def __init__(self, award_id: str):
        self.award_id = award_id
        super().__init__(f'Award {award_id} is already revoked')


class AwardStillActive(AchievementError):
    def __init__(self, award_id: str):
        self.award_id = award_id
        super().__init__(f'Award {award_id} is active; revoke it before clearing')


class BadgeInactive(AchievementError):
    def __init__(self, badge_id: str):
        self.badge_id = badge_id
        super().__init__(f'Badge {badge_id} is not active')


class BadgeInUse(AchievementError):
    def __init__(self, badge_id: str, active_awards: int):
        self.badge_id = badge_id
        self.active_awards = active_awards
        super().__init__(
            f'Badge {badge_id} is awarded to {active_awards} student(s); '
            'revoke those awards first'
        )


class NotBadgeAuthor(AchievementError):
    def __init__(self, badge_id: str, coach_id: str):
        self.badge_id = badge_id
        self.coach_id = coach_id
        super().__init__(f'Coach {coach_id} did not author badge {badge_id}')


class Unauthorized(AchievementError):
    '''Raised by the authorization collaborator, never by the engine itself.'''

    def __init__(self, coach_id: str, student_id: str):
        self.coach_id = coach_id
        self.student_id = student_id
        super().__init__(f'Coach {coach_id} may not act on student {student_id}')
