import logging
import pathlib

import discord
from discord.ext import commands

from athlete_badges.achievements.engine import BadgeEngine
from athlete_badges.database.db_manager import DBManager
from athlete_badges.services.badge_service import build_engine
from athlete_badges.utils.env import Settings, get_settings, load_env

logger = logging.getLogger(__name__)


class BadgeBot(commands.Bot):
    '''Chat front-end for coaches; every command delegates to `self.engine`.'''

    def __init__(self, engine: BadgeEngine, guild_id: int):
        super().__init__(command_prefix='/', intents=discord.Intents.default())
        self.engine = engine
        self.guild_id = guild_id

    async def setup_hook(self):
        cogs_path = pathlib.Path(__file__).parent / 'cogs'
        for file in sorted(cogs_path.glob('*_cog.py')):
            module = f'athlete_badges.cogs.{file.stem}'
            try:
                await self.load_extension(module)
                logger.info(f'Loaded {module}')
            except Exception:
                logger.error(f'Failed to load {module}', exc_info=True)

        guild = discord.Object(id=self.guild_id)
        self.tree.copy_global_to(guild=guild)
        await self.tree.sync(guild=guild)
        logger.info(f'Synced commands to guild {self.guild_id}')


async def main(settings: Settings | None = None):
    load_env()
    settings = settings or get_settings()
    if not settings.discord_token:
        raise RuntimeError('DISCORD_TOKEN not set in environment or .env')
    if settings.guild_id is None:
        raise RuntimeError('GUILD_ID not set in environment or .env')

    DBManager.init_pool(
        settings.database_url,
        min_size=settings.db_pool_min,
        max_size=settings.db_pool_max,
    )
    bot = BadgeBot(build_engine(settings), settings.guild_id)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    except Exception:
        logger.error('Bot failed due to an exception', exc_info=True)
    finally:
        DBManager.close_pool()
