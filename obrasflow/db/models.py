from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

ROLE_HOST = "host"
ROLE_FUNCIONARIO = "funcionario"
USER_ROLES = (ROLE_HOST, ROLE_FUNCIONARIO)

OBRA_STATUSES = ("ativa", "finalizada")
FERRAMENTA_STATUSES = ("disponivel", "em_uso", "desaparecida")
LOCATION_TYPES = ("obra", "estabelecimento")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def today_iso() -> str:
    return date.today().isoformat()


def _in(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(value) for value in values)})"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(_in("role", USER_ROLES), name="ck_users_role"),
        CheckConstraint(
            "(role = 'host' AND host_id IS NULL) OR (role = 'funcionario' AND host_id IS NOT NULL)",
            name="ck_users_host_id",
        ),
        Index("idx_users_host_id", "host_id"),
        Index("idx_users_role", "role"),
        Index("idx_users_cnpj", "cnpj"),
    )

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    cnpj = Column(String, nullable=True)
    role = Column(String, nullable=False)
    host_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(String, default=now_iso, nullable=False)
    updated_at = Column(String, default=now_iso, onupdate=now_iso, nullable=False)


class UserCredential(Base):
    __tablename__ = "user_credentials"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(String, default=now_iso, nullable=False)
    updated_at = Column(String, default=now_iso, onupdate=now_iso, nullable=False)


class Obra(Base):
    __tablename__ = "obras"
    __table_args__ = (
        CheckConstraint(_in("status", OBRA_STATUSES), name="ck_obras_status"),
        CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_obras_dates"),
        Index("idx_obras_owner_id", "owner_id"),
        Index("idx_obras_status", "status"),
    )

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(String, server_default="", nullable=True)
    endereco = Column(String, nullable=False)
    status = Column(String, server_default="ativa", nullable=False)
    owner_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    start_date = Column(String, default=today_iso, nullable=True)
    end_date = Column(String, nullable=True)
    engenheiro = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    created_at = Column(String, default=now_iso, nullable=False)
    updated_at = Column(String, default=now_iso, onupdate=now_iso, nullable=False)


class Estabelecimento(Base):
    __tablename__ = "estabelecimentos"
    __table_args__ = (Index("idx_estabelecimentos_owner_id", "owner_id"),)

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    endereco = Column(String, nullable=False)
    owner_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(String, default=now_iso, nullable=False)
    updated_at = Column(String, default=now_iso, onupdate=now_iso, nullable=False)


class Ferramenta(Base):
    __tablename__ = "ferramentas"
    __table_args__ = (
        CheckConstraint(_in("status", FERRAMENTA_STATUSES), name="ck_ferramentas_status"),
        CheckConstraint(
            f"current_type IS NULL OR {_in('current_type', LOCATION_TYPES)}",
            name="ck_ferramentas_current_type",
        ),
        CheckConstraint(
            "(current_type IS NULL AND current_id IS NULL) OR (current_type IS NOT NULL AND current_id IS NOT NULL)",
            name="ck_ferramentas_current_pair",
        ),
        Index("idx_ferramentas_owner_id", "owner_id"),
        Index("idx_ferramentas_current", "current_type", "current_id"),
        Index("idx_ferramentas_status", "status"),
    )

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    tipo = Column(String, server_default="", nullable=True)
    modelo = Column(String, server_default="", nullable=True)
    serial = Column(String, server_default="", nullable=True)
    status = Column(String, server_default="disponivel", nullable=False)
    current_type = Column(String, nullable=True)
    current_id = Column(String, nullable=True)
    cadastrado_por = Column(String, ForeignKey("users.id"), nullable=False)
    owner_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    descricao = Column(String, server_default="", nullable=True)
    nf = Column(String, server_default="", nullable=True)
    nf_image_url = Column(String, nullable=True)
    data = Column(String, nullable=True)
    valor = Column(Float, nullable=True)
    tempo_garantia_dias = Column(Integer, nullable=True)
    garantia = Column(String, server_default="", nullable=True)
    marca = Column(String, server_default="", nullable=True)
    numero_lacre = Column(String, server_default="", nullable=True)
    numero_placa = Column(String, server_default="", nullable=True)
    adesivo = Column(String, server_default="", nullable=True)
    usuario = Column(String, server_default="", nullable=True)
    obra = Column(String, server_default="", nullable=True)
    image_url = Column(String, nullable=True)
    created_at = Column(String, default=now_iso, nullable=False)
    updated_at = Column(String, default=now_iso, onupdate=now_iso, nullable=False)


class Movimentacao(Base):
    __tablename__ = "movimentacoes"
    __table_args__ = (
        CheckConstraint(
            f"from_type IS NULL OR {_in('from_type', LOCATION_TYPES)}",
            name="ck_movimentacoes_from_type",
        ),
        CheckConstraint(_in("to_type", LOCATION_TYPES), name="ck_movimentacoes_to_type"),
        Index("idx_movimentacoes_ferramenta_id", "ferramenta_id"),
        Index("idx_movimentacoes_user_id", "user_id"),
    )

    id = Column(String, primary_key=True)
    ferramenta_id = Column(String, ForeignKey("ferramentas.id", ondelete="CASCADE"), nullable=False)
    from_type = Column(String, nullable=True)
    from_id = Column(String, nullable=True)
    to_type = Column(String, nullable=False)
    to_id = Column(String, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    note = Column(String, server_default="", nullable=True)
    created_at = Column(String, default=now_iso, nullable=False)


class Historico(Base):
    __tablename__ = "historico"
    __table_args__ = (
        Index("idx_historico_ferramenta_id", "ferramenta_id"),
        Index("idx_historico_user_id", "user_id"),
    )

    id = Column(String, primary_key=True)
    ferramenta_id = Column(String, ForeignKey("ferramentas.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    action = Column(String, nullable=False)
    details = Column(String, nullable=True)
    location_type = Column(String, nullable=True)
    location_id = Column(String, nullable=True)
    created_at = Column(String, default=now_iso, nullable=False)


class ObraImage(Base):
    __tablename__ = "obra_images"
    __table_args__ = (Index("idx_obra_images_obra_id", "obra_id"),)

    id = Column(String, primary_key=True)
    obra_id = Column(String, ForeignKey("obras.id", ondelete="CASCADE"), nullable=False)
    image_url = Column(String, nullable=False)
    description = Column(String, server_default="", nullable=True)
    display_order = Column(Integer, server_default="0", nullable=False)
    uploaded_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(String, default=now_iso, nullable=False)


class UserObraPermission(Base):
    __tablename__ = "user_obra_permissions"
    __table_args__ = (UniqueConstraint("user_id", "obra_id", name="uq_user_obra_permission"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    obra_id = Column(String, ForeignKey("obras.id", ondelete="CASCADE"), nullable=False)
    host_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    can_view = Column(Boolean, server_default="0", nullable=False)
    can_edit = Column(Boolean, server_default="0", nullable=False)
    created_at = Column(String, default=now_iso, nullable=False)
    updated_at = Column(String, default=now_iso, onupdate=now_iso, nullable=False)


class UserFerramentaPermission(Base):
    __tablename__ = "user_ferramenta_permissions"
    __table_args__ = (UniqueConstraint("user_id", "ferramenta_id", name="uq_user_ferramenta_permission"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    ferramenta_id = Column(String, ForeignKey("ferramentas.id", ondelete="CASCADE"), nullable=False)
    host_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    can_view = Column(Boolean, server_default="0", nullable=False)
    can_edit = Column(Boolean, server_default="0", nullable=False)
    created_at = Column(String, default=now_iso, nullable=False)
    updated_at = Column(String, default=now_iso, onupdate=now_iso, nullable=False)
