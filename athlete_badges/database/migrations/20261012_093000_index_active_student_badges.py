from athlete_badges.database.db_manager import DBManager


def up(db_manager: DBManager):
    # get_earned and reconcile only ever look at non-revoked rows
    db_manager.execute(
        'CREATE INDEX IF NOT EXISTS idx_student_badges_active '
        'ON student_badges(student_id, badge_id) WHERE NOT is_revoked;'
    )


def down(db_manager: DBManager):
    db_manager.execute('DROP INDEX IF EXISTS idx_student_badges_active')
    db_manager.execute(
        'DELETE FROM migrations WHERE filename = %s',
        ('20261012_093000_index_active_student_badges.py',),
    )
