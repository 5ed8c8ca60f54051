import logging

from sqlalchemy import inspect, insert, text
from sqlalchemy.engine import Engine

from obrasflow.core.config import Settings
from obrasflow.core.security import get_password_hash
from obrasflow.db import models

logger = logging.getLogger("obrasflow.db")


def _ensure_missing_columns(engine: Engine) -> None:
    inspector = inspect(engine)
    preparer = engine.dialect.identifier_preparer
    existing_tables = set(inspector.get_table_names())
    for table_name, table in models.Base.metadata.tables.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        for column in table.columns:
            if column.name in existing_columns:
                continue
            col_type = column.type.compile(dialect=engine.dialect)
            with engine.begin() as connection:
                connection.execute(
                    text(
                        f"ALTER TABLE {preparer.quote(table_name)} "
                        f"ADD COLUMN {preparer.quote(column.name)} {col_type}"
                    )
                )
                if column.name == "updated_at" and "created_at" in existing_columns:
                    connection.execute(
                        text(f"UPDATE {preparer.quote(table_name)} SET updated_at = created_at WHERE updated_at IS NULL")
                    )
            logger.info("schema column added table=%s column=%s", table_name, column.name)


def ensure_schema(engine: Engine) -> None:
    # create_all verifica cada tabela/indice antes de criar, entao pode rodar a cada inicializacao.
    models.Base.metadata.create_all(bind=engine, checkfirst=True)
    _ensure_missing_columns(engine)


def seed_initial_data(engine: Engine, settings: Settings) -> None:
    with engine.begin() as connection:
        connection.execute(
            insert(models.User.__table__).values(
                id=settings.BOOTSTRAP_HOST_ID,
                name=settings.BOOTSTRAP_HOST_NAME,
                email=settings.BOOTSTRAP_HOST_EMAIL,
                cnpj=settings.BOOTSTRAP_HOST_CNPJ,
                role=models.ROLE_HOST,
                host_id=None,
            )
        )
        connection.execute(
            insert(models.UserCredential.__table__).values(
                user_id=settings.BOOTSTRAP_HOST_ID,
                password_hash=get_password_hash(settings.BOOTSTRAP_HOST_PASSWORD),
            )
        )
    logger.info("bootstrap host created id=%s email=%s", settings.BOOTSTRAP_HOST_ID, settings.BOOTSTRAP_HOST_EMAIL)
