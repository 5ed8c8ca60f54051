from obrasflow.core.errors import ExecuteError, QueryError, RepositoryError
from obrasflow.db.tables import TableAccess
from obrasflow.schemas import HistoricoEntry, Location, location_columns

_JOINED_SELECT = """
    SELECT h.*,
           u.name AS user_name,
           f.name AS ferramenta_name
    FROM historico h
    LEFT JOIN users u ON h.user_id = u.id
    LEFT JOIN ferramentas f ON h.ferramenta_id = f.id
"""


async def create_historico_entry(
    tables: TableAccess,
    ferramenta_id: str,
    user_id: str,
    action: str,
    details: str | None = None,
    location: Location | None = None,
) -> str:
    fields = {
        "ferramenta_id": ferramenta_id,
        "user_id": user_id,
        "action": action,
        "details": details,
        **location_columns(location, "location_type", "location_id"),
    }
    try:
        return await tables.insert_one("historico", fields)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel registrar o historico.") from exc


async def get_historico_by_owner_ids(tables: TableAccess, owner_ids: list[str]) -> list[HistoricoEntry]:
    if not owner_ids:
        return []
    try:
        rows = await tables.query(
            _JOINED_SELECT + " WHERE f.owner_id IN :owner_ids ORDER BY h.created_at DESC",
            {"owner_ids": owner_ids},
        )
    except QueryError:
        return []
    return [HistoricoEntry.model_validate(row) for row in rows]


async def get_historico_by_ferramenta(tables: TableAccess, ferramenta_id: str) -> list[HistoricoEntry]:
    try:
        rows = await tables.query(
            _JOINED_SELECT + " WHERE h.ferramenta_id = :ferramenta_id ORDER BY h.created_at DESC",
            {"ferramenta_id": ferramenta_id},
        )
    except QueryError:
        return []
    return [HistoricoEntry.model_validate(row) for row in rows]
