from athlete_badges.database.db_manager import DBManager


def up(db_manager: DBManager):
    # Coach-authored badges may be limited to specific students
    db_manager.execute('''
        CREATE TABLE IF NOT EXISTS badge_target_students (
            badge_id TEXT NOT NULL REFERENCES badges(id) ON DELETE CASCADE,
            student_id TEXT NOT NULL REFERENCES students(id) ON DELETE CASCADE,
            PRIMARY KEY (badge_id, student_id)
        );
    ''')
    db_manager.execute(
        'CREATE INDEX IF NOT EXISTS idx_badge_target_students_student_id '
        'ON badge_target_students(student_id);'
    )


def down(db_manager: DBManager):
    db_manager.execute('DROP TABLE IF EXISTS badge_target_students')
    db_manager.execute(
        'DELETE FROM migrations WHERE filename = %s',
        ('20261003_141200_create_badge_target_students.py',),
    )
