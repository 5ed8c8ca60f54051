import logging

from obrasflow.core.config import Settings, get_settings
from obrasflow.core.errors import RemoteError
from obrasflow.db.slot import DurableSlot, FileSlot
from obrasflow.db.store import LocalStore
from obrasflow.db.tables import TableAccess
from obrasflow.services.backend import DualBackend
from obrasflow.services.ferramentas_cache import FerramentasCache
from obrasflow.services.remote import RemoteBackend, SqlRemoteBackend

if not logging.getLogger().handlers:
    logging.basicConfig(level=get_settings().LOG_LEVEL)

logger = logging.getLogger("obrasflow")


class AppContext:
    """
    Monta o banco local, o servico remoto opcional e a fachada; desmonta tudo no shutdown.

    Uso::

        async with AppContext() as ctx:
            result = await ctx.backend.list_obras(user)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        slot: DurableSlot | None = None,
        remote: RemoteBackend | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.slot = slot or FileSlot(self.settings.LOCAL_STORE_DIR)
        self.store = LocalStore(self.slot, self.settings)
        self.tables = TableAccess(self.store)
        self.remote = remote
        self._owns_remote = False
        self.backend: DualBackend | None = None

    async def startup(self) -> DualBackend:
        await self.store.initialize()

        if self.remote is None and self.settings.REMOTE_DATABASE_URI:
            remote = SqlRemoteBackend(self.settings.REMOTE_DATABASE_URI, pool_pre_ping=True)
            try:
                await remote.ensure_schema()
            except RemoteError as exc:
                # O servico remoto pode voltar depois; o fallback local cobre o intervalo.
                logger.warning("remote schema check failed error=%s", exc)
            self.remote = remote
            self._owns_remote = True

        self.backend = DualBackend(
            self.tables,
            self.remote,
            primary=self.settings.PRIMARY_BACKEND,
            cache=FerramentasCache(ttl_seconds=self.settings.FERRAMENTAS_CACHE_SECONDS),
        )

        if self.settings.ENV.lower() == "production":
            if self.settings.BOOTSTRAP_HOST_PASSWORD == "senha123":
                logger.warning("BOOTSTRAP_HOST_PASSWORD esta usando valor padrao em producao.")
            if self.remote is None:
                logger.warning("REMOTE_DATABASE_URI vazio em producao; apenas o banco local sera usado.")

        logger.info(
            "startup complete app=%s primary=%s remote=%s",
            self.settings.APP_NAME,
            self.backend.primary,
            self.remote is not None,
        )
        return self.backend

    async def shutdown(self) -> None:
        if self.backend is not None:
            self.backend.close()
            self.backend = None
        if self._owns_remote and isinstance(self.remote, SqlRemoteBackend):
            await self.remote.dispose()
            self.remote = None
            self._owns_remote = False
        self.store.persist()
        self.store.dispose()
        logger.info("shutdown complete app=%s", self.settings.APP_NAME)

    async def __aenter__(self) -> "AppContext":
        await self.startup()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()
