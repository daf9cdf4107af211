import importlib.util
import logging
import os
from types import ModuleType

from athlete_badges.database.db_manager import DBManager
from athlete_badges.database.init_schema import init_schema

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), 'migrations'
)


def pending_migrations(
    db: DBManager, migrations_dir: str = MIGRATIONS_DIR
) -> list[str]:
    '''Migration filenames not yet recorded in the migrations table, oldest first.'''
    if not os.path.isdir(migrations_dir):
        return []
    available = sorted(
        f
        for f in os.listdir(migrations_dir)
        if f.endswith('.py') and not f.startswith('__')
    )
    rows = db.fetchall('SELECT filename FROM migrations')
    applied = {row['filename'] for row in rows}
    return [f for f in available if f not in applied]


def _load_migration(filepath: str) -> ModuleType:
    filename = os.path.basename(filepath)
    spec = importlib.util.spec_from_file_location(
        f'migration_{filename.removesuffix(".py")}', filepath
    )
    if spec is None or spec.loader is None:
        raise ImportError(f'Could not load migration module: {filename}')
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def run(db: DBManager, migrations_dir: str = MIGRATIONS_DIR):
    '''Run full DB setup: schema + migrations.'''
    init_schema(db)
    tables = db.fetchall(
        "SELECT tablename FROM pg_tables WHERE schemaname = 'public' ORDER BY 1"
    )
    logger.info(f'Current tables in DB: {[t["tablename"] for t in tables]}')

    for filename in pending_migrations(db, migrations_dir):
        try:
            migration = _load_migration(os.path.join(migrations_dir, filename))
            if not hasattr(migration, 'up'):
                logger.error(f'Skipping {filename}: no `up()` function found.')
                continue
            logger.info(f'Running migration: {filename}')
            migration.up(db)
            db.execute('INSERT INTO migrations (filename) VALUES (%s)', (filename,))
        except Exception:
            logger.error(f'Error running migration {filename}', exc_info=True)
            raise

    logger.info('Migrations complete.')


if __name__ == '__main__':
    with DBManager() as _db:
        run(_db)
