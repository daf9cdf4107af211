SYSTEM_ACTOR = 'system'

ALL_SPORTS = 'ALL'

# Ordinal tiers, lowest first
BADGE_LEVELS = ('BRONZE', 'SILVER', 'GOLD', 'PLATINUM')

DEFAULT_CATEGORY = 'GENERAL'
CUSTOM_CATEGORY = 'Custom'

# Columns of student_skills that are bookkeeping, not metrics
NON_METRIC_COLUMNS = frozenset({'id', 'student_id', 'created_at', 'updated_at'})

DEFAULT_BADGE_ICON = '🏆'
DEFAULT_MOTIVATIONAL_TEXT = 'Keep up the great work!'
