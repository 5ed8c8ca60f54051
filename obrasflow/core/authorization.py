"""
Filtro de obras visiveis por usuario.

Politica unica (fail-closed): host ve tudo que a empresa possui; funcionario ve apenas as
obras listadas em user_obra_permissions. Nenhuma linha de permissao significa nenhuma obra,
e erro ao consultar as permissoes tambem resulta em nenhuma obra (registrado como erro).

filter_permitted_obras e check_obra_permission deixam o erro de consulta subir; a fachada
de dois backends usa essas variantes para tentar o outro backend antes de negar acesso.
"""

import logging
from typing import Sequence, TypeVar

from obrasflow.core.errors import PermissionLookupError, QueryError, RemoteError
from obrasflow.db import models
from obrasflow.db.tables import TableAccess
from obrasflow.repositories import permissions
from obrasflow.schemas import Obra
from obrasflow.services.remote import RemoteBackend

logger = logging.getLogger("obrasflow.authorization")

O = TypeVar("O", bound=Obra)


class PermissionSource:
    async def permitted_obra_ids(self, user_id: str) -> set[str]:
        raise NotImplementedError

    async def has_permission_row(self, user_id: str, obra_id: str) -> bool:
        raise NotImplementedError


class LocalPermissionSource(PermissionSource):
    def __init__(self, tables: TableAccess) -> None:
        self.tables = tables

    async def permitted_obra_ids(self, user_id: str) -> set[str]:
        try:
            return await permissions.permitted_obra_ids(self.tables, user_id)
        except QueryError as exc:
            raise PermissionLookupError(str(exc)) from exc

    async def has_permission_row(self, user_id: str, obra_id: str) -> bool:
        try:
            return await permissions.has_obra_permission_row(self.tables, user_id, obra_id)
        except QueryError as exc:
            raise PermissionLookupError(str(exc)) from exc


class RemotePermissionSource(PermissionSource):
    def __init__(self, remote: RemoteBackend) -> None:
        self.remote = remote

    async def permitted_obra_ids(self, user_id: str) -> set[str]:
        try:
            rows = await self.remote.select("user_obra_permissions", eq={"user_id": user_id})
        except RemoteError as exc:
            raise PermissionLookupError(str(exc)) from exc
        return {row["obra_id"] for row in rows}

    async def has_permission_row(self, user_id: str, obra_id: str) -> bool:
        try:
            rows = await self.remote.select(
                "user_obra_permissions", eq={"user_id": user_id, "obra_id": obra_id}, limit=1
            )
        except RemoteError as exc:
            raise PermissionLookupError(str(exc)) from exc
        return bool(rows)


def is_host(role: str) -> bool:
    return role == models.ROLE_HOST


async def filter_permitted_obras(
    source: PermissionSource,
    user_id: str,
    role: str,
    obras: Sequence[O],
) -> list[O]:
    """Como get_filtered_obras, mas PermissionLookupError sobe para quem chamou."""
    if is_host(role):
        return list(obras)
    allowed = await source.permitted_obra_ids(user_id)
    if not allowed:
        logger.info("no obra permissions user_id=%s", user_id)
        return []
    return [obra for obra in obras if obra.id in allowed]


async def get_filtered_obras(
    source: PermissionSource,
    user_id: str,
    role: str,
    obras: Sequence[O],
) -> list[O]:
    try:
        return await filter_permitted_obras(source, user_id, role, obras)
    except PermissionLookupError as exc:
        logger.error("permission lookup failed user_id=%s policy=fail-closed error=%s", user_id, exc)
        return []


async def get_user_permissions(source: PermissionSource, user_id: str) -> set[str]:
    try:
        return await source.permitted_obra_ids(user_id)
    except PermissionLookupError as exc:
        logger.error("permission lookup failed user_id=%s error=%s", user_id, exc)
        return set()


async def check_obra_permission(source: PermissionSource, user_id: str, role: str, obra_id: str) -> bool:
    if is_host(role):
        return True
    return await source.has_permission_row(user_id, obra_id)


async def has_obra_permission(source: PermissionSource, user_id: str, role: str, obra_id: str) -> bool:
    try:
        return await check_obra_permission(source, user_id, role, obra_id)
    except PermissionLookupError as exc:
        logger.error("permission check failed user_id=%s obra_id=%s policy=fail-closed error=%s", user_id, obra_id, exc)
        return False
