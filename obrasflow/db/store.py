import asyncio
import base64
import binascii
import logging
import sqlite3

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from obrasflow.core.config import Settings, get_settings
from obrasflow.core.errors import SlotError, StoreInitError
from obrasflow.db.init_db import ensure_schema, seed_initial_data
from obrasflow.db.slot import DurableSlot

logger = logging.getLogger("obrasflow.db.store")


class LocalStore:
    """
    Banco SQLite em memoria cuja imagem completa e gravada no slot duravel apos cada escrita.

    Uma instancia por processo (ou por teste). A inicializacao e single-flight: chamadas
    concorrentes aguardam a mesma tarefa, entao o schema e o host inicial sao aplicados uma vez.
    """

    def __init__(self, slot: DurableSlot, settings: Settings | None = None) -> None:
        self.slot = slot
        self.settings = settings or get_settings()
        self.key = self.settings.LOCAL_STORE_KEY
        self._engine: Engine | None = None
        self._raw: sqlite3.Connection | None = None
        self._init_task: asyncio.Task | None = None

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    async def initialize(self) -> Engine:
        if self._engine is not None:
            return self._engine
        if self._init_task is None:
            self._init_task = asyncio.get_running_loop().create_task(self._initialize())
        return await self._init_task

    async def get_instance(self) -> Engine:
        return await self.initialize()

    async def _initialize(self) -> Engine:
        try:
            saved = self.slot.get(self.key)
        except (SlotError, OSError) as exc:
            raise StoreInitError(f"Falha ao ler a imagem do banco local: {exc}") from exc

        raw = self._open(saved)
        engine = create_engine("sqlite://", creator=lambda: raw, poolclass=StaticPool)
        try:
            ensure_schema(engine)
            if saved is None:
                seed_initial_data(engine, self.settings)
        except SQLAlchemyError as exc:
            engine.dispose()
            raise StoreInitError(f"Falha ao aplicar o schema do banco local: {exc}") from exc

        self._engine = engine
        self._raw = raw
        if saved is None:
            self.persist()
            logger.info("local store created key=%s", self.key)
        else:
            logger.info("local store loaded key=%s bytes=%s", self.key, len(saved))
        return engine

    @staticmethod
    def _open(saved: str | None) -> sqlite3.Connection:
        try:
            raw = sqlite3.connect(":memory:", check_same_thread=False)
        except sqlite3.Error as exc:
            raise StoreInitError(f"SQLite indisponivel: {exc}") from exc
        try:
            if saved is not None:
                image = base64.b64decode(saved.encode("ascii"), validate=True)
                if not image:
                    raise ValueError("imagem vazia")
                raw.deserialize(image)
                raw.execute("SELECT count(*) FROM sqlite_master").fetchone()
            raw.execute("PRAGMA foreign_keys = ON")
        except (binascii.Error, ValueError, sqlite3.Error) as exc:
            raw.close()
            raise StoreInitError(f"Imagem do banco local corrompida: {exc}") from exc
        return raw

    def persist(self) -> None:
        if self._raw is None:
            return
        try:
            payload = base64.b64encode(self._raw.serialize()).decode("ascii")
        except sqlite3.Error as exc:
            logger.error("local store serialize failed key=%s error=%s", self.key, exc)
            return
        try:
            self.slot.set(self.key, payload)
        except (SlotError, OSError) as exc:
            # A escrita ja esta no banco em memoria; so a copia duravel ficou para tras.
            logger.error("local store persist failed key=%s bytes=%s error=%s", self.key, len(payload), exc)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        if self._raw is not None:
            self._raw.close()
        self._engine = None
        self._raw = None
        self._init_task = None
