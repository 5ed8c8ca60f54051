import logging
import uuid
from typing import Any, Iterable, Mapping

from sqlalchemy import Table, bindparam, delete, insert, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Executable

from obrasflow.core.errors import ExecuteError, QueryError
from obrasflow.db import models
from obrasflow.db.store import LocalStore

logger = logging.getLogger("obrasflow.db.tables")

Params = Mapping[str, Any]
Statement = str | Executable


def new_id() -> str:
    return str(uuid.uuid4())


def get_table(name: str) -> Table:
    table = models.Base.metadata.tables.get(name)
    if table is None:
        raise ValueError(f"Tabela desconhecida: {name}")
    return table


def _prepare(statement: Statement, params: Params | None) -> tuple[Executable, dict[str, Any]]:
    values = {
        key: list(value) if isinstance(value, (list, tuple, set, frozenset)) else value
        for key, value in (params or {}).items()
    }
    if not isinstance(statement, str):
        return statement, values
    clause = text(statement)
    expanding = [bindparam(key, expanding=True) for key, value in values.items() if isinstance(value, list)]
    if expanding:
        clause = clause.bindparams(*expanding)
    return clause, values


def insert_statement(table: str, fields: Mapping[str, Any]) -> tuple[Executable, str]:
    target = get_table(table)
    key = next(iter(target.primary_key.columns)).name
    values = dict(fields)
    if key == "id" and not values.get("id"):
        values["id"] = new_id()
    return insert(target).values(**values), values.get(key)


def update_statement(table: str, id: str, fields: Mapping[str, Any]) -> Executable:
    target = get_table(table)
    values = dict(fields)
    if "updated_at" in target.c:
        values["updated_at"] = models.now_iso()
    return update(target).where(target.c.id == id).values(**values)


class TableAccess:
    """CRUD parametrizado por nome de tabela sobre o banco local."""

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    async def query(self, sql: Statement, params: Params | None = None) -> list[dict[str, Any]]:
        engine = await self.store.get_instance()
        statement, values = _prepare(sql, params)
        try:
            with engine.connect() as connection:
                result = connection.execute(statement, values)
                return [dict(row) for row in result.mappings()]
        except SQLAlchemyError as exc:
            logger.error("query failed statement=%s params=%s error=%s", sql, values, exc)
            raise QueryError(str(exc.__cause__ or exc), str(sql), values) from exc

    async def execute(self, sql: Statement, params: Params | None = None) -> None:
        await self.execute_batch([(sql, params)])

    async def execute_batch(self, statements: Iterable[tuple[Statement, Params | None]]) -> None:
        engine = await self.store.get_instance()
        current: Statement = ""
        values: dict[str, Any] = {}
        try:
            with engine.begin() as connection:
                for current, params in statements:
                    statement, values = _prepare(current, params)
                    connection.execute(statement, values)
        except SQLAlchemyError as exc:
            logger.error("execute failed statement=%s params=%s error=%s", current, values, exc)
            raise ExecuteError(str(exc.__cause__ or exc), str(current), values) from exc
        self.store.persist()

    async def insert_one(self, table: str, fields: Mapping[str, Any]) -> str:
        statement, id = insert_statement(table, fields)
        await self.execute(statement)
        return id

    async def update_one(self, table: str, id: str, fields: Mapping[str, Any]) -> None:
        await self.execute(update_statement(table, id, fields))

    async def delete_one(self, table: str, id: str) -> None:
        target = get_table(table)
        await self.execute(delete(target).where(target.c.id == id))

    async def select_all(
        self,
        table: str,
        where: str | None = None,
        params: Params | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        target = get_table(table)
        sql = f"SELECT * FROM {target.name}"
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        return await self.query(sql, params)

    async def select_one(
        self,
        table: str,
        where: str,
        params: Params | None = None,
    ) -> dict[str, Any] | None:
        rows = await self.select_all(table, where, params)
        return rows[0] if rows else None

