import logging

from obrasflow.core.errors import ExecuteError, QueryError, RepositoryError
from obrasflow.db.tables import TableAccess
from obrasflow.schemas import Obra, ObraCreate, ObraImage, ObraUpdate

logger = logging.getLogger("obrasflow.obras")


async def get_obras_by_owner_ids(tables: TableAccess, owner_ids: list[str]) -> list[Obra]:
    if not owner_ids:
        return []
    try:
        rows = await tables.select_all(
            "obras", "owner_id IN :owner_ids", {"owner_ids": owner_ids}, order_by="created_at DESC"
        )
    except QueryError:
        return []
    return [Obra.model_validate(row) for row in rows]


async def get_active_obras_by_owner_ids(tables: TableAccess, owner_ids: list[str]) -> list[Obra]:
    if not owner_ids:
        return []
    try:
        rows = await tables.select_all(
            "obras",
            "owner_id IN :owner_ids AND status = 'ativa'",
            {"owner_ids": owner_ids},
            order_by="created_at DESC",
        )
    except QueryError:
        return []
    return [Obra.model_validate(row) for row in rows]


async def get_obra(tables: TableAccess, obra_id: str) -> Obra | None:
    try:
        row = await tables.select_one("obras", "id = :id", {"id": obra_id})
    except QueryError:
        return None
    return Obra.model_validate(row) if row else None


async def create_obra(tables: TableAccess, payload: ObraCreate) -> Obra:
    try:
        obra_id = await tables.insert_one("obras", payload.model_dump(exclude_none=True))
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel cadastrar a obra.") from exc
    obra = await get_obra(tables, obra_id)
    if obra is None:
        raise RepositoryError("Obra cadastrada mas nao encontrada.")
    return obra


async def update_obra(tables: TableAccess, obra_id: str, payload: ObraUpdate) -> None:
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        return
    try:
        await tables.update_one("obras", obra_id, fields)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel atualizar a obra.") from exc


async def delete_obra(tables: TableAccess, obra_id: str) -> None:
    try:
        await tables.delete_one("obras", obra_id)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel remover a obra.") from exc


async def get_obra_images(tables: TableAccess, obra_id: str) -> list[ObraImage]:
    try:
        rows = await tables.select_all(
            "obra_images", "obra_id = :obra_id", {"obra_id": obra_id}, order_by="display_order, created_at"
        )
    except QueryError:
        return []
    return [ObraImage.model_validate(row) for row in rows]


async def add_obra_image(
    tables: TableAccess,
    obra_id: str,
    image_url: str,
    uploaded_by: str,
    description: str = "",
    display_order: int | None = None,
) -> ObraImage:
    if display_order is None:
        existing = await get_obra_images(tables, obra_id)
        display_order = max((image.display_order for image in existing), default=-1) + 1
    try:
        image_id = await tables.insert_one(
            "obra_images",
            {
                "obra_id": obra_id,
                "image_url": image_url,
                "uploaded_by": uploaded_by,
                "description": description,
                "display_order": display_order,
            },
        )
        row = await tables.select_one("obra_images", "id = :id", {"id": image_id})
    except (ExecuteError, QueryError) as exc:
        raise RepositoryError("Nao foi possivel anexar a imagem da obra.") from exc
    return ObraImage.model_validate(row)


async def delete_obra_image(tables: TableAccess, image_id: str) -> None:
    try:
        await tables.delete_one("obra_images", image_id)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel remover a imagem da obra.") from exc
