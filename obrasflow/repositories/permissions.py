import logging

from obrasflow.core.errors import ExecuteError, QueryError, RepositoryError
from obrasflow.db.tables import TableAccess
from obrasflow.schemas import FerramentaPermission, ObraPermission

logger = logging.getLogger("obrasflow.permissions")


async def get_user_obra_permissions(tables: TableAccess, user_id: str) -> list[ObraPermission]:
    try:
        rows = await tables.select_all("user_obra_permissions", "user_id = :user_id", {"user_id": user_id})
    except QueryError:
        return []
    return [ObraPermission.model_validate(row) for row in rows]


async def get_user_ferramenta_permissions(tables: TableAccess, user_id: str) -> list[FerramentaPermission]:
    try:
        rows = await tables.select_all("user_ferramenta_permissions", "user_id = :user_id", {"user_id": user_id})
    except QueryError:
        return []
    return [FerramentaPermission.model_validate(row) for row in rows]


async def _set_permission(
    tables: TableAccess,
    table: str,
    target_column: str,
    user_id: str,
    target_id: str,
    can_view: bool,
    can_edit: bool,
    host_id: str | None,
) -> None:
    # Upsert na aplicacao: procura o par (user_id, alvo) e atualiza no lugar, senao insere.
    flags = {"can_view": bool(can_view), "can_edit": bool(can_edit)}
    try:
        existing = await tables.select_one(
            table,
            f"user_id = :user_id AND {target_column} = :target_id",
            {"user_id": user_id, "target_id": target_id},
        )
        if existing:
            if host_id is not None:
                flags["host_id"] = host_id
            await tables.update_one(table, existing["id"], flags)
        else:
            await tables.insert_one(
                table,
                {"user_id": user_id, target_column: target_id, "host_id": host_id, **flags},
            )
    except (QueryError, ExecuteError) as exc:
        raise RepositoryError("Nao foi possivel salvar a permissao.") from exc
    logger.info("permission saved table=%s user_id=%s target_id=%s", table, user_id, target_id)


async def set_user_obra_permission(
    tables: TableAccess,
    user_id: str,
    obra_id: str,
    can_view: bool,
    can_edit: bool,
    host_id: str | None = None,
) -> None:
    await _set_permission(tables, "user_obra_permissions", "obra_id", user_id, obra_id, can_view, can_edit, host_id)


async def set_user_ferramenta_permission(
    tables: TableAccess,
    user_id: str,
    ferramenta_id: str,
    can_view: bool,
    can_edit: bool,
    host_id: str | None = None,
) -> None:
    await _set_permission(
        tables, "user_ferramenta_permissions", "ferramenta_id", user_id, ferramenta_id, can_view, can_edit, host_id
    )


async def _delete_permission(tables: TableAccess, table: str, target_column: str, user_id: str, target_id: str) -> None:
    try:
        existing = await tables.select_one(
            table,
            f"user_id = :user_id AND {target_column} = :target_id",
            {"user_id": user_id, "target_id": target_id},
        )
        if existing:
            await tables.delete_one(table, existing["id"])
    except (QueryError, ExecuteError) as exc:
        raise RepositoryError("Nao foi possivel remover a permissao.") from exc


async def delete_user_obra_permission(tables: TableAccess, user_id: str, obra_id: str) -> None:
    await _delete_permission(tables, "user_obra_permissions", "obra_id", user_id, obra_id)


async def delete_user_ferramenta_permission(tables: TableAccess, user_id: str, ferramenta_id: str) -> None:
    await _delete_permission(tables, "user_ferramenta_permissions", "ferramenta_id", user_id, ferramenta_id)


async def permitted_obra_ids(tables: TableAccess, user_id: str) -> set[str]:
    # Sem captura de QueryError: o filtro de permissoes precisa distinguir erro de "nenhuma linha".
    rows = await tables.query(
        "SELECT obra_id FROM user_obra_permissions WHERE user_id = :user_id", {"user_id": user_id}
    )
    return {row["obra_id"] for row in rows}


async def has_obra_permission_row(tables: TableAccess, user_id: str, obra_id: str) -> bool:
    rows = await tables.query(
        "SELECT id FROM user_obra_permissions WHERE user_id = :user_id AND obra_id = :obra_id LIMIT 1",
        {"user_id": user_id, "obra_id": obra_id},
    )
    return bool(rows)
