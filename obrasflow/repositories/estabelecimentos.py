from obrasflow.core.errors import ExecuteError, QueryError, RepositoryError
from obrasflow.db.tables import TableAccess
from obrasflow.schemas import Estabelecimento, EstabelecimentoCreate, EstabelecimentoUpdate


async def get_estabelecimentos_by_owner_ids(tables: TableAccess, owner_ids: list[str]) -> list[Estabelecimento]:
    if not owner_ids:
        return []
    try:
        rows = await tables.select_all(
            "estabelecimentos", "owner_id IN :owner_ids", {"owner_ids": owner_ids}, order_by="name"
        )
    except QueryError:
        return []
    return [Estabelecimento.model_validate(row) for row in rows]


async def get_estabelecimento(tables: TableAccess, estabelecimento_id: str) -> Estabelecimento | None:
    try:
        row = await tables.select_one("estabelecimentos", "id = :id", {"id": estabelecimento_id})
    except QueryError:
        return None
    return Estabelecimento.model_validate(row) if row else None


async def create_estabelecimento(tables: TableAccess, payload: EstabelecimentoCreate) -> Estabelecimento:
    try:
        estabelecimento_id = await tables.insert_one("estabelecimentos", payload.model_dump())
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel cadastrar o estabelecimento.") from exc
    estabelecimento = await get_estabelecimento(tables, estabelecimento_id)
    if estabelecimento is None:
        raise RepositoryError("Estabelecimento cadastrado mas nao encontrado.")
    return estabelecimento


async def update_estabelecimento(tables: TableAccess, estabelecimento_id: str, payload: EstabelecimentoUpdate) -> None:
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        return
    try:
        await tables.update_one("estabelecimentos", estabelecimento_id, fields)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel atualizar o estabelecimento.") from exc


async def delete_estabelecimento(tables: TableAccess, estabelecimento_id: str) -> None:
    try:
        await tables.delete_one("estabelecimentos", estabelecimento_id)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel remover o estabelecimento.") from exc
