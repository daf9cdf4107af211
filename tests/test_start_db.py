from athlete_badges.database import start_db
from athlete_badges.database.start_db import MIGRATIONS_DIR, pending_migrations


def test_pending_migrations_skips_applied(tmp_path, fake_db):
    for name in ('20260101_000000_a.py', '20260201_000000_b.py', 'notes.txt'):
        (tmp_path / name).write_text('def up(db):\n    pass\n')
    (tmp_path / '__init__.py').write_text('')
    fake_db.fetchall_results = [[{'filename': '20260101_000000_a.py'}]]

    assert pending_migrations(fake_db, str(tmp_path)) == ['20260201_000000_b.py']


def test_shipped_migrations_have_up_and_down():
    for name in pending_migrations(_NoneApplied(), MIGRATIONS_DIR):
        module = start_db._load_migration(f'{MIGRATIONS_DIR}/{name}')
        assert callable(module.up)
        assert callable(module.down)


def test_run_records_applied_migrations(tmp_path, fake_db, monkeypatch):
    (tmp_path / '20260301_000000_add_index.py').write_text(
        'def up(db):\n    db.execute("CREATE INDEX demo ON badges (name)")\n'
    )
    monkeypatch.setattr(start_db, 'init_schema', lambda db: None)

    start_db.run(fake_db, str(tmp_path))

    statements = [q for q, _ in fake_db.executed]
    assert statements[0].startswith('CREATE INDEX demo')
    assert fake_db.executed[-1] == (
        'INSERT INTO migrations (filename) VALUES (%s)',
        ('20260301_000000_add_index.py',),
    )


class _NoneApplied:
    def fetchall(self, query, params=None):
        return []
