from typing import Any, ClassVar, Iterable, Optional

from psycopg.types.json import Json

from athlete_badges.database.db_manager import DBManager


def _adapt(value: Any) -> Any:
    # dict values land in JSONB columns
    return Json(value) if isinstance(value, dict) else value


class BaseModel:
    '''Thin table gateway: classmethods issue one statement per call.'''

    table: ClassVar[str]
    pk: ClassVar[str] = 'id'

    @classmethod
    def get(cls, id_value: Any) -> Optional[dict[str, Any]]:
        with DBManager() as db:
            return db.fetchone(
                f'SELECT * FROM {cls.table} WHERE {cls.pk} = %s', (id_value,)
            )

    @classmethod
    def get_many(
        cls,
        where: str = '',
        params: Iterable[Any] = (),
        order_by: str = '',
    ) -> list[dict[str, Any]]:
        query = f'SELECT * FROM {cls.table}'
        if where:
            query += f' WHERE {where}'
        if order_by:
            query += f' ORDER BY {order_by}'
        with DBManager() as db:
            return db.fetchall(query, tuple(params))

    @classmethod
    def insert_sql(
        cls, values: dict[str, Any], suffix: str = 'RETURNING *'
    ) -> tuple[str, tuple[Any, ...]]:
        cols = list(values)
        sql = (
            f'INSERT INTO {cls.table} ({", ".join(cols)}) '
            f'VALUES ({", ".join(["%s"] * len(cols))}) {suffix}'
        )
        return sql, tuple(_adapt(values[c]) for c in cols)
