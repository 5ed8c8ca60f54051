import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Literal, Mapping

from sqlalchemy import Table, delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from obrasflow.core.errors import RemoteError
from obrasflow.db import models
from obrasflow.db.tables import get_table, insert_statement

logger = logging.getLogger("obrasflow.remote")

ChangeKind = Literal["INSERT", "UPDATE", "DELETE"]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    kind: ChangeKind
    row: dict[str, Any] | None = None


ChangeCallback = Callable[[ChangeEvent], None]


class RemoteBackend:
    """
    Servico relacional remoto visto pelo nucleo: CRUD por tabela e assinatura de mudancas.

    Toda operacao pode falhar e, quando falha, levanta RemoteError.
    """

    async def select(
        self,
        table: str,
        *,
        eq: Mapping[str, Any] | None = None,
        in_: Mapping[str, Iterable[Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def insert(self, table: str, values: Mapping[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    async def update(self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]) -> dict[str, Any] | None:
        raise NotImplementedError

    async def delete(self, table: str, *, eq: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        raise NotImplementedError


class SqlRemoteBackend(RemoteBackend):
    def __init__(self, url: str, **engine_kwargs: Any) -> None:
        self.engine = create_async_engine(url, **engine_kwargs)
        self._subscribers: dict[str, list[ChangeCallback]] = {}

    @staticmethod
    def _filters(target: Table, eq: Mapping[str, Any] | None, in_: Mapping[str, Iterable[Any]] | None) -> list:
        clauses = [target.c[column] == value for column, value in (eq or {}).items()]
        clauses.extend(target.c[column].in_(list(values)) for column, values in (in_ or {}).items())
        return clauses

    async def ensure_schema(self) -> None:
        try:
            async with self.engine.begin() as connection:
                await connection.run_sync(models.Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as exc:
            raise RemoteError(f"Falha ao preparar o schema remoto: {exc}") from exc

    async def select(
        self,
        table: str,
        *,
        eq: Mapping[str, Any] | None = None,
        in_: Mapping[str, Iterable[Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        target = get_table(table)
        statement = select(target).where(*self._filters(target, eq, in_))
        if order_by:
            column = target.c[order_by]
            statement = statement.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            statement = statement.limit(limit)
        try:
            async with self.engine.connect() as connection:
                result = await connection.execute(statement)
                return [dict(row) for row in result.mappings()]
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("remote select failed table=%s error=%s", table, exc)
            raise RemoteError(f"Falha ao consultar {table} no servico remoto.") from exc

    async def insert(self, table: str, values: Mapping[str, Any]) -> dict[str, Any]:
        target = get_table(table)
        key = next(iter(target.primary_key.columns))
        statement, row_id = insert_statement(table, values)
        try:
            async with self.engine.begin() as connection:
                await connection.execute(statement)
                result = await connection.execute(select(target).where(key == row_id))
                row = dict(result.mappings().one())
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("remote insert failed table=%s error=%s", table, exc)
            raise RemoteError(f"Falha ao inserir em {table} no servico remoto.") from exc
        self._notify(ChangeEvent(table, "INSERT", row))
        return row

    async def update(self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]) -> dict[str, Any] | None:
        target = get_table(table)
        filters = self._filters(target, eq, None)
        if not filters:
            raise ValueError("Update remoto exige ao menos um filtro.")
        try:
            async with self.engine.begin() as connection:
                await connection.execute(update(target).where(*filters).values(**values))
                result = await connection.execute(select(target).where(*filters))
                found = result.mappings().first()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("remote update failed table=%s error=%s", table, exc)
            raise RemoteError(f"Falha ao atualizar {table} no servico remoto.") from exc
        row = dict(found) if found else None
        self._notify(ChangeEvent(table, "UPDATE", row))
        return row

    async def delete(self, table: str, *, eq: Mapping[str, Any]) -> None:
        target = get_table(table)
        filters = self._filters(target, eq, None)
        if not filters:
            raise ValueError("Delete remoto exige ao menos um filtro.")
        try:
            async with self.engine.begin() as connection:
                await connection.execute(delete(target).where(*filters))
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("remote delete failed table=%s error=%s", table, exc)
            raise RemoteError(f"Falha ao remover de {table} no servico remoto.") from exc
        self._notify(ChangeEvent(table, "DELETE", dict(eq)))

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        get_table(table)
        self._subscribers.setdefault(table, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(table, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def _notify(self, event: ChangeEvent) -> None:
        for callback in list(self._subscribers.get(event.table, [])):
            try:
                callback(event)
            except Exception:
                logger.exception("change subscriber failed table=%s kind=%s", event.table, event.kind)

    async def dispose(self) -> None:
        await self.engine.dispose()
