import asyncio
from types import SimpleNamespace

import pytest

from obrasflow.core.config import get_settings
from obrasflow.db.slot import MemorySlot
from obrasflow.db.store import LocalStore
from obrasflow.db.tables import TableAccess
from obrasflow.repositories import accounts


@pytest.fixture()
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCAL_STORE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("PRIMARY_BACKEND", "remote")
    monkeypatch.delenv("REMOTE_DATABASE_URI", raising=False)
    monkeypatch.delenv("BOOTSTRAP_HOST_ID", raising=False)
    monkeypatch.delenv("BOOTSTRAP_HOST_PASSWORD", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture()
def slot():
    return MemorySlot()


@pytest.fixture()
def store(slot, settings):
    store = LocalStore(slot, settings)
    yield store
    store.dispose()


@pytest.fixture()
def tables(store):
    return TableAccess(store)


@pytest.fixture()
def company(tables, settings):
    async def _seed():
        host = await accounts.get_user(tables, settings.BOOTSTRAP_HOST_ID)
        partner = await accounts.add_employee(
            tables, host, name="Beatriz Lima", email="beatriz@pratica.eng.br", password="senha-socia", role="host"
        )
        funcionario = await accounts.add_employee(
            tables, host, name="Joao Pedreiro", email="joao@pratica.eng.br", password="senha-joao"
        )
        return SimpleNamespace(host=host, partner=partner, funcionario=funcionario)

    return asyncio.run(_seed())
