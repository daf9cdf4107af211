import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _find_project_root(start: Optional[Path] = None) -> Path:
    start = start or Path(__file__).resolve()
    current = start if start.is_dir() else start.parent
    markers = {'pyproject.toml', 'requirements.txt', '.git'}
    while True:
        if any((current / m).exists() for m in markers):
            return current
        if current.parent == current:
            return start if start.is_dir() else start.parent
        current = current.parent


def _resolve_env_filename() -> str:
    env_file = os.getenv('ENV_FILE')
    if env_file:
        return env_file

    env = (os.getenv('ENV') or os.getenv('PYTHON_ENV') or 'local').lower()
    if env in {'prod', 'production'}:
        return '.env.prod'
    return '.env.local'


def load_env(override: bool = False) -> Path:
    '''Load the environment file for the current ENV, falling back to .env.'''
    root = _find_project_root()
    target = _resolve_env_filename()

    env_path = Path(target)
    if not env_path.is_absolute():
        env_path = root / target

    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=override)
    else:
        fallback = root / '.env'
        if fallback.exists():
            load_dotenv(dotenv_path=fallback, override=override)

    return env_path


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f'{name} must be an integer, got {raw!r}') from None


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    db_pool_min: int
    db_pool_max: int
    log_level: str
    # Seconds a cached catalog listing stays valid; 0 keeps it until invalidated
    catalog_ttl: int
    discord_token: Optional[str]
    guild_id: Optional[int]


def get_settings() -> Settings:
    guild_id = os.getenv('GUILD_ID')
    return Settings(
        database_url=os.getenv('DATABASE_URL'),
        db_pool_min=_int_env('DB_POOL_MIN', 1),
        db_pool_max=_int_env('DB_POOL_MAX', 10),
        log_level=(os.getenv('LOG_LEVEL') or 'INFO').upper(),
        catalog_ttl=_int_env('BADGE_CATALOG_TTL', 0),
        discord_token=os.getenv('DISCORD_TOKEN'),
        guild_id=int(guild_id) if guild_id else None,
    )
