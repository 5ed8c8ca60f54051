import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from obrasflow.core import authorization
from obrasflow.core.errors import ExecuteError, PermissionLookupError, QueryError, RemoteError, RepositoryError
from obrasflow.db import models
from obrasflow.db.tables import TableAccess
from obrasflow.repositories import accounts, estabelecimentos, ferramentas, historico, obras
from obrasflow.schemas import (
    Estabelecimento,
    EstabelecimentoCreate,
    Ferramenta,
    FerramentaCreate,
    FerramentaStatus,
    FerramentaUpdate,
    HistoricoEntry,
    Location,
    Movimentacao,
    Obra,
    ObraCreate,
    ObraUpdate,
    User,
    location_columns,
)
from obrasflow.services.ferramentas_cache import FerramentasCache
from obrasflow.services.remote import ChangeCallback, ChangeEvent, RemoteBackend

logger = logging.getLogger("obrasflow.backend")

T = TypeVar("T")

# StoreInitError fica de fora de proposito: banco local indisponivel e fatal.
_BACKEND_FAILURES = (RemoteError, QueryError, ExecuteError, RepositoryError, PermissionLookupError)

_PRIMARY_CHOICES = ("remote", "local")

M = TypeVar("M", bound=BaseModel)


class Outcome(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    FALLBACK = "fallback"
    CACHED = "cached"
    FAILED = "failed"


def _from_remote(model: type[M], row: dict[str, Any]) -> M:
    try:
        return model.model_validate(row)
    except ValidationError as exc:
        raise RemoteError(f"Linha remota invalida para {model.__name__}: {exc}") from exc


@dataclass
class BackendResult(Generic[T]):
    outcome: Outcome
    data: T
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FAILED


class DualBackend:
    """
    Ponto unico de leitura/escrita: tenta o backend primario uma vez e, se ele falhar,
    tenta o outro uma vez. O resultado informa quem atendeu (REMOTE, LOCAL, FALLBACK)
    ou FAILED quando nenhum dos dois conseguiu.

    list_ferramentas responde CACHED quando a lista sai do cache em memoria, sem
    consultar nenhum backend.

    Nas consultas de permissao, uma falha de leitura no primario tambem cai para o
    secundario; a politica fail-closed (lista vazia / False) so vale quando os dois falham.
    """

    def __init__(
        self,
        tables: TableAccess,
        remote: RemoteBackend | None = None,
        primary: str = "remote",
        cache: FerramentasCache | None = None,
    ) -> None:
        if primary not in _PRIMARY_CHOICES:
            raise ValueError("primary deve ser 'remote' ou 'local'.")
        self.tables = tables
        self.remote = remote
        self.primary = primary if remote is not None else "local"
        self.cache = cache or FerramentasCache()
        self._unsubscribe = remote.subscribe("ferramentas", self._on_ferramentas_change) if remote else None

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        if self.remote is None:
            return lambda: None
        return self.remote.subscribe(table, callback)

    def _on_ferramentas_change(self, event: ChangeEvent) -> None:
        self.cache.clear()

    async def _run(
        self,
        operation: str,
        remote_call: Callable[[], Awaitable[T]],
        local_call: Callable[[], Awaitable[T]],
        default: T,
    ) -> BackendResult[T]:
        attempts = [("local", local_call)]
        if self.remote is not None:
            attempts = [("remote", remote_call), ("local", local_call)]
            if self.primary == "local":
                attempts.reverse()

        error: Exception | None = None
        for index, (backend, call) in enumerate(attempts):
            try:
                data = await call()
            except _BACKEND_FAILURES as exc:
                error = exc
                logger.warning("backend failed operation=%s backend=%s error=%s", operation, backend, exc)
                continue
            if index > 0:
                logger.info("fallback operation=%s served_by=%s", operation, backend)
                return BackendResult(Outcome.FALLBACK, data)
            return BackendResult(Outcome.REMOTE if backend == "remote" else Outcome.LOCAL, data)

        logger.error("operation failed operation=%s error=%s", operation, error)
        return BackendResult(Outcome.FAILED, default, error)

    async def _remote_owner_ids(self, user: User) -> list[str]:
        anchor = user
        if user.role != models.ROLE_HOST:
            if not user.host_id:
                return []
            rows = await self.remote.select("users", eq={"id": user.host_id}, limit=1)
            if not rows:
                return [user.host_id]
            anchor = _from_remote(User, rows[0])
        if not anchor.cnpj:
            return [anchor.id]
        rows = await self.remote.select("users", eq={"role": models.ROLE_HOST, "cnpj": anchor.cnpj})
        host_ids = [row["id"] for row in rows]
        if anchor.id not in host_ids:
            host_ids.append(anchor.id)
        return host_ids

    async def list_obras(self, user: User, active_only: bool = False) -> BackendResult[list[Obra]]:
        async def remote() -> list[Obra]:
            owner_ids = await self._remote_owner_ids(user)
            rows = await self.remote.select(
                "obras",
                eq={"status": "ativa"} if active_only else None,
                in_={"owner_id": owner_ids},
                order_by="created_at",
                descending=True,
            )
            source = authorization.RemotePermissionSource(self.remote)
            return await authorization.filter_permitted_obras(
                source, user.id, user.role, [_from_remote(Obra, row) for row in rows]
            )

        async def local() -> list[Obra]:
            owner_ids = await accounts.resolve_owner_ids(self.tables, user)
            if active_only:
                found = await obras.get_active_obras_by_owner_ids(self.tables, owner_ids)
            else:
                found = await obras.get_obras_by_owner_ids(self.tables, owner_ids)
            source = authorization.LocalPermissionSource(self.tables)
            return await authorization.filter_permitted_obras(source, user.id, user.role, found)

        return await self._run("list_obras", remote, local, [])

    async def has_obra_permission(self, user: User, obra_id: str) -> BackendResult[bool]:
        async def remote() -> bool:
            source = authorization.RemotePermissionSource(self.remote)
            return await authorization.check_obra_permission(source, user.id, user.role, obra_id)

        async def local() -> bool:
            source = authorization.LocalPermissionSource(self.tables)
            return await authorization.check_obra_permission(source, user.id, user.role, obra_id)

        return await self._run("has_obra_permission", remote, local, False)

    async def list_ferramentas(self, user: User) -> BackendResult[list[Ferramenta]]:
        cached = self.cache.get(user.id)
        if cached is not None:
            logger.debug("ferramentas cache hit user_id=%s", user.id)
            return BackendResult(Outcome.CACHED, cached)

        async def remote() -> list[Ferramenta]:
            owner_ids = await self._remote_owner_ids(user)
            rows = await self.remote.select("ferramentas", in_={"owner_id": owner_ids}, order_by="name")
            return [_from_remote(Ferramenta, row) for row in rows]

        async def local() -> list[Ferramenta]:
            owner_ids = await accounts.resolve_owner_ids(self.tables, user)
            return await ferramentas.get_ferramentas_by_owner_ids(self.tables, owner_ids)

        result = await self._run("list_ferramentas", remote, local, [])
        # So o primario entra no cache; um fallback nao deve mascarar a volta do primario.
        if result.outcome in (Outcome.REMOTE, Outcome.LOCAL):
            self.cache.set(user.id, result.data)
        return result

    async def list_desaparecidas(self, user: User) -> BackendResult[list[Ferramenta]]:
        async def remote() -> list[Ferramenta]:
            owner_ids = await self._remote_owner_ids(user)
            rows = await self.remote.select(
                "ferramentas", eq={"status": "desaparecida"}, in_={"owner_id": owner_ids}, order_by="name"
            )
            return [_from_remote(Ferramenta, row) for row in rows]

        async def local() -> list[Ferramenta]:
            owner_ids = await accounts.resolve_owner_ids(self.tables, user)
            return await ferramentas.get_desaparecidas_by_owner_ids(self.tables, owner_ids)

        return await self._run("list_desaparecidas", remote, local, [])

    async def list_estabelecimentos(self, user: User) -> BackendResult[list[Estabelecimento]]:
        async def remote() -> list[Estabelecimento]:
            owner_ids = await self._remote_owner_ids(user)
            rows = await self.remote.select("estabelecimentos", in_={"owner_id": owner_ids}, order_by="name")
            return [_from_remote(Estabelecimento, row) for row in rows]

        async def local() -> list[Estabelecimento]:
            owner_ids = await accounts.resolve_owner_ids(self.tables, user)
            return await estabelecimentos.get_estabelecimentos_by_owner_ids(self.tables, owner_ids)

        return await self._run("list_estabelecimentos", remote, local, [])

    async def _remote_names(self, table: str, ids: set[str]) -> dict[str, str]:
        if not ids:
            return {}
        rows = await self.remote.select(table, in_={"id": ids})
        return {row["id"]: row["name"] for row in rows}

    async def list_historico(self, user: User) -> BackendResult[list[HistoricoEntry]]:
        async def remote() -> list[HistoricoEntry]:
            owner_ids = await self._remote_owner_ids(user)
            tools = await self._remote_names_by_owner(owner_ids)
            rows = await self.remote.select(
                "historico", in_={"ferramenta_id": tools}, order_by="created_at", descending=True
            )
            users = await self._remote_names("users", {row["user_id"] for row in rows})
            return [
                _from_remote(
                    HistoricoEntry,
                    {**row, "user_name": users.get(row["user_id"]), "ferramenta_name": tools.get(row["ferramenta_id"])},
                )
                for row in rows
            ]

        async def local() -> list[HistoricoEntry]:
            owner_ids = await accounts.resolve_owner_ids(self.tables, user)
            return await historico.get_historico_by_owner_ids(self.tables, owner_ids)

        return await self._run("list_historico", remote, local, [])

    async def list_movimentacoes(self, user: User) -> BackendResult[list[Movimentacao]]:
        async def remote() -> list[Movimentacao]:
            owner_ids = await self._remote_owner_ids(user)
            tools = await self._remote_names_by_owner(owner_ids)
            rows = await self.remote.select(
                "movimentacoes", in_={"ferramenta_id": tools}, order_by="created_at", descending=True
            )
            return [
                _from_remote(Movimentacao, {**row, "ferramenta_name": tools.get(row["ferramenta_id"])})
                for row in rows
            ]

        async def local() -> list[Movimentacao]:
            owner_ids = await accounts.resolve_owner_ids(self.tables, user)
            return await ferramentas.get_movimentacoes_by_owner_ids(self.tables, owner_ids)

        return await self._run("list_movimentacoes", remote, local, [])

    async def _remote_names_by_owner(self, owner_ids: list[str]) -> dict[str, str]:
        rows = await self.remote.select("ferramentas", in_={"owner_id": owner_ids})
        return {row["id"]: row["name"] for row in rows}

    async def create_obra(self, payload: ObraCreate) -> BackendResult[Obra | None]:
        async def remote() -> Obra:
            row = await self.remote.insert("obras", payload.model_dump(exclude_none=True))
            return _from_remote(Obra, row)

        return await self._run("create_obra", remote, lambda: obras.create_obra(self.tables, payload), None)

    async def update_obra(self, obra_id: str, payload: ObraUpdate) -> BackendResult[None]:
        async def remote() -> None:
            fields = payload.model_dump(exclude_unset=True)
            if fields:
                await self.remote.update("obras", fields, eq={"id": obra_id})

        return await self._run(
            "update_obra", remote, lambda: obras.update_obra(self.tables, obra_id, payload), None
        )

    async def delete_obra(self, obra_id: str) -> BackendResult[None]:
        return await self._run(
            "delete_obra",
            lambda: self.remote.delete("obras", eq={"id": obra_id}),
            lambda: obras.delete_obra(self.tables, obra_id),
            None,
        )

    async def create_estabelecimento(self, payload: EstabelecimentoCreate) -> BackendResult[Estabelecimento | None]:
        async def remote() -> Estabelecimento:
            row = await self.remote.insert("estabelecimentos", payload.model_dump())
            return _from_remote(Estabelecimento, row)

        return await self._run(
            "create_estabelecimento",
            remote,
            lambda: estabelecimentos.create_estabelecimento(self.tables, payload),
            None,
        )

    async def create_ferramenta(self, payload: FerramentaCreate) -> BackendResult[Ferramenta | None]:
        async def remote() -> Ferramenta:
            row = await self.remote.insert("ferramentas", payload.to_row())
            return _from_remote(Ferramenta, row)

        self.cache.clear()
        return await self._run(
            "create_ferramenta", remote, lambda: ferramentas.create_ferramenta(self.tables, payload), None
        )

    async def update_ferramenta(self, ferramenta_id: str, payload: FerramentaUpdate) -> BackendResult[None]:
        async def remote() -> None:
            fields = payload.to_row()
            if fields:
                await self.remote.update("ferramentas", fields, eq={"id": ferramenta_id})

        self.cache.clear()
        return await self._run(
            "update_ferramenta",
            remote,
            lambda: ferramentas.update_ferramenta(self.tables, ferramenta_id, payload),
            None,
        )

    async def delete_ferramenta(self, ferramenta_id: str) -> BackendResult[None]:
        self.cache.clear()
        return await self._run(
            "delete_ferramenta",
            lambda: self.remote.delete("ferramentas", eq={"id": ferramenta_id}),
            lambda: ferramentas.delete_ferramenta(self.tables, ferramenta_id),
            None,
        )

    async def _undo_remote_movimentacao(
        self, movement_id: str, ferramenta_id: str | None = None, restore: dict[str, Any] | None = None
    ) -> None:
        try:
            if ferramenta_id is not None and restore is not None:
                await self.remote.update("ferramentas", restore, eq={"id": ferramenta_id})
            await self.remote.delete("movimentacoes", eq={"id": movement_id})
        except RemoteError as exc:
            logger.error("remote movimentacao rollback failed movement_id=%s error=%s", movement_id, exc)

    async def record_movimentacao(
        self,
        ferramenta_id: str,
        destination: Location,
        user_id: str,
        note: str = "",
        status: FerramentaStatus | None = None,
    ) -> BackendResult[Movimentacao | None]:
        async def remote() -> Movimentacao:
            rows = await self.remote.select("ferramentas", eq={"id": ferramenta_id}, limit=1)
            if not rows:
                raise RepositoryError("Ferramenta nao encontrada.")
            previous = _from_remote(Ferramenta, rows[0])
            origin = previous.location
            movement = await self.remote.insert(
                "movimentacoes",
                {
                    "ferramenta_id": ferramenta_id,
                    "user_id": user_id,
                    "note": note,
                    **location_columns(origin, "from_type", "from_id"),
                    **location_columns(destination, "to_type", "to_id"),
                },
            )
            fields: dict[str, Any] = location_columns(destination, "current_type", "current_id")
            if status is not None:
                fields["status"] = status
            try:
                await self.remote.update("ferramentas", fields, eq={"id": ferramenta_id})
            except RemoteError:
                await self._undo_remote_movimentacao(movement["id"])
                raise
            try:
                await self.remote.insert(
                    "historico",
                    {
                        "ferramenta_id": ferramenta_id,
                        "user_id": user_id,
                        "action": "movimentacao",
                        "details": note or None,
                        **location_columns(destination, "location_type", "location_id"),
                    },
                )
            except RemoteError:
                restore = location_columns(origin, "current_type", "current_id")
                restore["status"] = previous.status
                await self._undo_remote_movimentacao(movement["id"], ferramenta_id, restore)
                raise
            return _from_remote(Movimentacao, movement)

        async def local() -> Movimentacao:
            return await ferramentas.record_movimentacao(
                self.tables, ferramenta_id, destination, user_id, note=note, status=status
            )

        self.cache.clear()
        return await self._run("record_movimentacao", remote, local, None)
