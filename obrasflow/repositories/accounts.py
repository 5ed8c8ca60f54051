import logging

from sqlalchemy import update

from obrasflow.core.config import get_settings
from obrasflow.core.errors import AuthenticationError, ExecuteError, QueryError, RepositoryError
from obrasflow.core.security import get_password_hash, pwd_context, verify_password_with_upgrade
from obrasflow.db import models
from obrasflow.db.tables import TableAccess
from obrasflow.schemas import Role, User

logger = logging.getLogger("obrasflow.accounts")


async def get_user(tables: TableAccess, user_id: str) -> User | None:
    try:
        row = await tables.select_one("users", "id = :id", {"id": user_id})
    except QueryError:
        return None
    return User.model_validate(row) if row else None


async def resolve_company_host_ids(tables: TableAccess, user: User) -> list[str]:
    """Ids de todos os hosts que compartilham o CNPJ do host informado; nunca vazio."""
    fallback = [user.id]
    if not user.cnpj:
        return fallback
    try:
        rows = await tables.select_all(
            "users",
            "role = :role AND cnpj = :cnpj",
            {"role": models.ROLE_HOST, "cnpj": user.cnpj},
            order_by="created_at",
        )
    except QueryError:
        logger.warning("company hosts lookup failed user_id=%s cnpj=%s", user.id, user.cnpj)
        return fallback
    host_ids = [row["id"] for row in rows]
    if user.id not in host_ids:
        host_ids.append(user.id)
    return host_ids


async def resolve_owner_ids(tables: TableAccess, user: User) -> list[str]:
    if user.role == models.ROLE_HOST:
        return await resolve_company_host_ids(tables, user)
    host = await get_user(tables, user.host_id) if user.host_id else None
    if host is None:
        return [user.host_id] if user.host_id else []
    return await resolve_company_host_ids(tables, host)


async def create_user(
    tables: TableAccess,
    *,
    name: str,
    email: str,
    role: Role,
    password: str,
    cnpj: str | None = None,
    host_id: str | None = None,
) -> User:
    try:
        user_id = await tables.insert_one(
            "users",
            {
                "name": name.strip(),
                "email": email.strip().lower(),
                "role": role,
                "cnpj": cnpj,
                "host_id": host_id,
            },
        )
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel cadastrar o usuario. Verifique se o email ja esta em uso.") from exc

    try:
        await tables.insert_one(
            "user_credentials",
            {"user_id": user_id, "password_hash": get_password_hash(password)},
        )
    except (ExecuteError, ValueError) as exc:
        logger.error("credential insert failed user_id=%s error=%s", user_id, exc)
        try:
            await tables.delete_one("users", user_id)
        except ExecuteError:
            logger.error("compensating delete failed user_id=%s", user_id)
        raise RepositoryError("Nao foi possivel registrar a senha do usuario.") from exc

    user = await get_user(tables, user_id)
    if user is None:
        raise RepositoryError("Usuario cadastrado mas nao encontrado.")
    return user


async def add_employee(
    tables: TableAccess,
    host: User,
    *,
    name: str,
    email: str,
    password: str,
    role: Role = "funcionario",
) -> User:
    if host.role != models.ROLE_HOST:
        raise RepositoryError("Apenas hosts podem cadastrar funcionarios.")
    logger.info("employee create host_id=%s role=%s", host.id, role)
    return await create_user(
        tables,
        name=name,
        email=email,
        role=role,
        password=password,
        cnpj=host.cnpj,
        host_id=None if role == models.ROLE_HOST else host.id,
    )


async def _belongs_to_company(tables: TableAccess, host: User, candidate: User) -> bool:
    if candidate.role == models.ROLE_HOST:
        return bool(host.cnpj) and candidate.cnpj == host.cnpj
    return candidate.host_id in await resolve_company_host_ids(tables, host)


async def remove_employee(tables: TableAccess, host: User, employee_id: str) -> None:
    if host.role != models.ROLE_HOST:
        raise RepositoryError("Apenas hosts podem remover funcionarios.")
    protected_id = get_settings().BOOTSTRAP_HOST_ID
    if employee_id == protected_id:
        raise RepositoryError("O host principal do sistema nao pode ser removido.")
    employee = await get_user(tables, employee_id)
    if employee is None or not await _belongs_to_company(tables, host, employee):
        raise RepositoryError("Funcionario nao encontrado.")
    try:
        await tables.delete_one("users", employee_id)
    except ExecuteError as exc:
        raise RepositoryError("Nao foi possivel remover o funcionario.") from exc
    logger.info("employee removed host_id=%s employee_id=%s", host.id, employee_id)


async def get_employees(tables: TableAccess, host: User) -> list[User]:
    if host.role != models.ROLE_HOST:
        return []
    host_ids = await resolve_company_host_ids(tables, host)
    try:
        funcionarios = await tables.select_all(
            "users",
            "role = :role AND host_id IN :host_ids",
            {"role": models.ROLE_FUNCIONARIO, "host_ids": host_ids},
        )
        hosts = await tables.select_all(
            "users",
            "role = :role AND cnpj = :cnpj AND id != :id",
            {"role": models.ROLE_HOST, "cnpj": host.cnpj, "id": host.id},
        )
    except QueryError:
        return []
    users = [User.model_validate(row) for row in funcionarios + hosts]
    return sorted(users, key=lambda user: user.name.lower())


async def authenticate(tables: TableAccess, cnpj: str, username: str, password: str) -> User:
    try:
        row = await tables.select_one(
            "users",
            "cnpj = :cnpj AND LOWER(name) = LOWER(:name)",
            {"cnpj": cnpj.strip(), "name": username.strip()},
        )
        credential = (
            await tables.select_one("user_credentials", "user_id = :user_id", {"user_id": row["id"]})
            if row
            else None
        )
    except QueryError as exc:
        raise RepositoryError("Nao foi possivel verificar as credenciais.") from exc

    if not row or not credential:
        pwd_context.dummy_verify()
        logger.info("sign-in rejected reason=unknown_user cnpj=%s", cnpj)
        raise AuthenticationError()

    ok, needs_upgrade = verify_password_with_upgrade(password, credential["password_hash"])
    if not ok:
        logger.info("sign-in rejected reason=bad_password user_id=%s", row["id"])
        raise AuthenticationError()

    if needs_upgrade:
        table = models.UserCredential.__table__
        try:
            await tables.execute(
                update(table)
                .where(table.c.user_id == row["id"])
                .values(password_hash=get_password_hash(password), updated_at=models.now_iso())
            )
        except ExecuteError:
            logger.warning("credential upgrade failed user_id=%s", row["id"])
    return User.model_validate(row)
