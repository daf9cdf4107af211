import logging
import os
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

T = TypeVar('T')

logger = logging.getLogger(__name__)


def require_connection(func: Callable) -> Callable:
    '''Decorator to ensure DBManager is used within a context manager.'''

    @wraps(func)
    def wrapper(self: 'DBManager', *args, **kwargs) -> Any:
        if self._conn is None:
            raise RuntimeError(
                'DBManager is not in a context. Use "with DBManager() as db:"'
            )
        return func(self, *args, **kwargs)

    return wrapper


def _database_url(db_url: Optional[str] = None) -> str:
    conninfo = db_url or os.getenv('DATABASE_URL')
    if not conninfo:
        raise RuntimeError('DATABASE_URL is not set')
    return conninfo


class DBManager:
    '''
    One Postgres transaction per `with` block: committed on success, rolled
    back on error. Connections come from the process-wide pool when one was
    initialized, otherwise a fresh connection is opened for the block.
    '''

    _pool: Optional[ConnectionPool] = None

    def __init__(self) -> None:
        self._conn: Optional[psycopg.Connection] = None

    @classmethod
    def init_pool(
        cls, db_url: Optional[str] = None, min_size: int = 1, max_size: int = 10
    ) -> None:
        if cls._pool is not None:
            return
        cls._pool = ConnectionPool(
            conninfo=_database_url(db_url),
            min_size=min_size,
            max_size=max_size,
            kwargs={'row_factory': dict_row},
            open=True,
        )
        logger.info(f'Initialized Postgres pool (min={min_size}, max={max_size})')

    @classmethod
    def close_pool(cls) -> None:
        if cls._pool is None:
            return
        try:
            cls._pool.close()
        finally:
            cls._pool = None

    def __enter__(self) -> 'DBManager':
        self._conn = self._acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._conn is None:
            return
        try:
            if exc_type is None:
                self._conn.commit()
            else:
                self._conn.rollback()
        finally:
            self._release()

    def _acquire(self) -> psycopg.Connection:
        pool = self.__class__._pool
        if pool is not None:
            return pool.getconn()
        return psycopg.connect(_database_url(), row_factory=dict_row)

    def _release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        pool = self.__class__._pool
        if pool is not None:
            # the pool discards broken connections on return
            pool.putconn(conn)
        else:
            conn.close()

    def _retrying(self, fn: Callable[[psycopg.Cursor], T], query: str) -> T:
        '''Run fn on a cursor; on a dropped connection reconnect and retry once.'''
        assert self._conn is not None
        try:
            with self._conn.cursor() as cur:
                return fn(cur)
        except (psycopg.OperationalError, psycopg.InterfaceError) as e:
            if not self._conn.closed:
                raise
            logger.warning(f'Connection lost ({e}); reconnecting and retrying once')
            self._release()
            self._conn = self._acquire()
            with self._conn.cursor() as cur:
                return fn(cur)
        except Exception as e:
            logger.error(f'Postgres error: {e}\nQuery: {query}')
            raise

    @require_connection
    def execute(self, query: str, params: Iterable[Any] | None = None) -> None:
        '''Execute a statement that returns no rows.'''
        self._retrying(lambda cur: cur.execute(query, tuple(params or ())), query)

    @require_connection
    def executemany(self, query: str, param_list: Iterable[Sequence[Any]]) -> None:
        rows = list(param_list)
        if not rows:
            return
        self._retrying(lambda cur: cur.executemany(query, rows), query)

    @require_connection
    def fetchall(
        self, query: str, params: Iterable[Any] | None = None
    ) -> list[dict[str, Any]]:
        '''Return all rows as dictionaries; [] for statements without results.'''

        def _do(cur: psycopg.Cursor) -> list[dict[str, Any]]:
            cur.execute(query, tuple(params or ()))
            return cur.fetchall() if cur.description else []

        return self._retrying(_do, query)

    @require_connection
    def fetchone(
        self, query: str, params: Iterable[Any] | None = None
    ) -> Optional[dict[str, Any]]:
        rows = self.fetchall(query, params)
        return rows[0] if rows else None
