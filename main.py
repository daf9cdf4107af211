import asyncio

from athlete_badges.bot import main as run
from athlete_badges.database import start_db
from athlete_badges.database.db_manager import DBManager
from athlete_badges.utils.env import get_settings, load_env
from athlete_badges.utils.logs import setup_logging

if __name__ == '__main__':
    load_env()
    settings = get_settings()
    setup_logging(settings.log_level)

    with DBManager() as db:
        # Run full DB setup (schema + migrations)
        start_db.run(db)

    asyncio.run(run(settings))
