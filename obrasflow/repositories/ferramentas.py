import logging

from obrasflow.core.errors import ExecuteError, QueryError, RepositoryError
from obrasflow.db.tables import TableAccess, insert_statement, update_statement
from obrasflow.schemas import (
    Ferramenta,
    FerramentaCreate,
    FerramentaStatus,
    FerramentaUpdate,
    Location,
    Movimentacao,
    location_columns,
)

logger = logging.getLogger("obrasflow.ferramentas")


async def _select_ferramentas(tables: TableAccess, where: str, params: dict) -> list[Ferramenta]:
    try:
        rows = await tables.select_all("ferramentas", where, params, order_by="name")
    except QueryError:
        return []
    return [Ferramenta.model_validate(row) for row in rows]


async def get_ferramentas_by_owner_ids(tables: TableAccess, owner_ids: list[str]) -> list[Ferramenta]:
    if not owner_ids:
        return []
    return await _select_ferramentas(tables, "owner_id IN :owner_ids", {"owner_ids": owner_ids})


async def get_desaparecidas_by_owner_ids(tables: TableAccess, owner_ids: list[str]) -> list[Ferramenta]:
    if not owner_ids:
        return []
    return await _select_ferramentas(
        tables, "owner_id IN :owner_ids AND status = 'desaparecida'", {"owner_ids": owner_ids}
    )


async def get_ferramentas_at(tables: TableAccess, location: Location) -> list[Ferramenta]:
    return await _select_ferramentas(
        tables, "current_type = :kind AND current_id = :id", {"kind": location.kind, "id": location.id}
    )


async def get_ferramenta(tables: TableAccess, ferramenta_id: str) -> Ferramenta | None:
    try:
        row = await tables.select_one("ferramentas", "id = :id", {"id": ferramenta_id})
    except QueryError:
        return None
    return Ferramenta.model_validate(row) if row else None


async def create_ferramenta(tables: TableAccess, payload: FerramentaCreate) -> Ferramenta:
    try:
        ferramenta_id = await tables.insert_one("ferramentas", payload.to_row())
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel cadastrar a ferramenta.") from exc
    ferramenta = await get_ferramenta(tables, ferramenta_id)
    if ferramenta is None:
        raise RepositoryError("Ferramenta cadastrada mas nao encontrada.")
    return ferramenta


async def update_ferramenta(tables: TableAccess, ferramenta_id: str, payload: FerramentaUpdate) -> None:
    fields = payload.to_row()
    if not fields:
        return
    try:
        await tables.update_one("ferramentas", ferramenta_id, fields)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel atualizar a ferramenta.") from exc


async def delete_ferramenta(tables: TableAccess, ferramenta_id: str) -> None:
    try:
        await tables.delete_one("ferramentas", ferramenta_id)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel remover a ferramenta.") from exc


async def record_movimentacao(
    tables: TableAccess,
    ferramenta_id: str,
    destination: Location,
    user_id: str,
    note: str = "",
    status: FerramentaStatus | None = None,
) -> Movimentacao:
    """
    Registra a movimentacao e move a ferramenta para o destino na mesma transacao.

    A linha de movimentacao, a nova localizacao da ferramenta e a entrada de historico
    sao gravadas juntas; se qualquer comando falhar nenhuma delas fica no banco.
    """
    ferramenta = await get_ferramenta(tables, ferramenta_id)
    if ferramenta is None:
        raise RepositoryError("Ferramenta nao encontrada.")

    movement, movement_id = insert_statement(
        "movimentacoes",
        {
            "ferramenta_id": ferramenta_id,
            "user_id": user_id,
            "note": note,
            **location_columns(ferramenta.location, "from_type", "from_id"),
            **location_columns(destination, "to_type", "to_id"),
        },
    )
    fields = location_columns(destination, "current_type", "current_id")
    if status is not None:
        fields["status"] = status
    relocation = update_statement("ferramentas", ferramenta_id, fields)
    entry, _ = insert_statement(
        "historico",
        {
            "ferramenta_id": ferramenta_id,
            "user_id": user_id,
            "action": "movimentacao",
            "details": note or None,
            **location_columns(destination, "location_type", "location_id"),
        },
    )
    try:
        await tables.execute_batch([(movement, None), (relocation, None), (entry, None)])
        row = await tables.select_one("movimentacoes", "id = :id", {"id": movement_id})
    except (ExecuteError, QueryError) as exc:
        raise RepositoryError("Nao foi possivel registrar a movimentacao.") from exc
    logger.info(
        "movimentacao recorded ferramenta_id=%s to_type=%s to_id=%s",
        ferramenta_id,
        destination.kind,
        destination.id,
    )
    return Movimentacao.model_validate(row)


async def get_movimentacoes_by_ferramenta(tables: TableAccess, ferramenta_id: str) -> list[Movimentacao]:
    try:
        rows = await tables.select_all(
            "movimentacoes",
            "ferramenta_id = :ferramenta_id",
            {"ferramenta_id": ferramenta_id},
            order_by="created_at DESC",
        )
    except QueryError:
        return []
    return [Movimentacao.model_validate(row) for row in rows]


async def get_movimentacoes_by_owner_ids(tables: TableAccess, owner_ids: list[str]) -> list[Movimentacao]:
    if not owner_ids:
        return []
    try:
        rows = await tables.query(
            """
            SELECT m.*, f.name AS ferramenta_name
            FROM movimentacoes m
            JOIN ferramentas f ON m.ferramenta_id = f.id
            WHERE f.owner_id IN :owner_ids
            ORDER BY m.created_at DESC
            """,
            {"owner_ids": owner_ids},
        )
    except QueryError:
        return []
    return [Movimentacao.model_validate(row) for row in rows]
