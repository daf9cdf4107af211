import logging

from athlete_badges.database.db_manager import DBManager

logger = logging.getLogger(__name__)


def init_schema(db: DBManager):
    '''Create the database schema if it doesn't already exist.'''

    # --- STUDENTS TABLE (owned by the profile CRUD layer, read here) ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS students (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            student_name TEXT NOT NULL,
            sport TEXT NOT NULL DEFAULT 'CRICKET',
            coach_id TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- STUDENT SKILLS TABLE (one metric per column, NULL = not recorded) ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS student_skills (
            student_id TEXT PRIMARY KEY REFERENCES students(id) ON DELETE CASCADE,
            batting_average DOUBLE PRECISION,
            bowling_economy DOUBLE PRECISION,
            strike_rate DOUBLE PRECISION,
            catches INTEGER,
            sprint_speed DOUBLE PRECISION,
            endurance DOUBLE PRECISION,
            agility DOUBLE PRECISION,
            pushups INTEGER,
            matches_played INTEGER,
            fitness_test_passed BOOLEAN,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- BADGE CATEGORIES TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS badge_categories (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            name TEXT UNIQUE NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            icon TEXT NOT NULL DEFAULT '',
            color TEXT NOT NULL DEFAULT '#6366f1'
        )
        '''
    )

    # --- BADGES TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS badges (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            motivational_text TEXT NOT NULL DEFAULT '',
            level TEXT NOT NULL
                CHECK (level IN ('BRONZE', 'SILVER', 'GOLD', 'PLATINUM')),
            icon TEXT NOT NULL DEFAULT '',
            sport TEXT NOT NULL DEFAULT 'ALL',
            category_id TEXT NOT NULL REFERENCES badge_categories(id),
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            origin TEXT NOT NULL DEFAULT 'system'
                CHECK (origin IN ('system', 'coach')),
            author_coach_id TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK ((origin = 'coach') = (author_coach_id IS NOT NULL))
        )
        '''
    )

    # --- BADGE RULES TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS badge_rules (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            badge_id TEXT NOT NULL REFERENCES badges(id) ON DELETE CASCADE,
            field_name TEXT NOT NULL,
            operator TEXT NOT NULL,
            threshold DOUBLE PRECISION NOT NULL,
            weight DOUBLE PRECISION NOT NULL DEFAULT 1.0,
            is_required BOOLEAN NOT NULL DEFAULT FALSE,
            description TEXT NOT NULL DEFAULT '',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- STUDENT BADGES TABLE (one row per pair; revoked rows kept for audit) ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS student_badges (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            student_id TEXT NOT NULL REFERENCES students(id) ON DELETE CASCADE,
            badge_id TEXT NOT NULL REFERENCES badges(id),
            progress INTEGER NOT NULL DEFAULT 0
                CHECK (progress BETWEEN 0 AND 100),
            score DOUBLE PRECISION NOT NULL DEFAULT 0,
            awarded_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            awarded_by TEXT NOT NULL DEFAULT 'system',
            is_revoked BOOLEAN NOT NULL DEFAULT FALSE,
            revoked_at TIMESTAMPTZ,
            revoked_by TEXT,
            revoke_reason TEXT,
            UNIQUE (student_id, badge_id)
        )
        '''
    )

    # --- MIGRATIONS TABLE ---
    db.execute(
        '''
        CREATE TABLE IF NOT EXISTS migrations (
            id SERIAL PRIMARY KEY,
            filename TEXT NOT NULL UNIQUE,
            applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        '''
    )

    # --- INDEXES ---
    db.execute(
        'CREATE INDEX IF NOT EXISTS idx_badges_active_sport '
        'ON badges(sport) WHERE is_active;'
    )
    db.execute(
        'CREATE INDEX IF NOT EXISTS idx_badge_rules_badge_id '
        'ON badge_rules(badge_id);'
    )
    db.execute(
        'CREATE INDEX IF NOT EXISTS idx_student_badges_badge_id '
        'ON student_badges(badge_id);'
    )

    # --- TRIGGER: keep badges.updated_at current ---
    db.execute(
        '''
        CREATE OR REPLACE FUNCTION touch_updated_at() RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        '''
    )
    db.execute('DROP TRIGGER IF EXISTS badges_touch_updated_at ON badges;')
    db.execute(
        '''
        CREATE TRIGGER badges_touch_updated_at
        BEFORE UPDATE ON badges
        FOR EACH ROW EXECUTE FUNCTION touch_updated_at();
        '''
    )
    logger.debug('Schema verified')
