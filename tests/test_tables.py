import asyncio
import uuid

import pytest

from obrasflow.core.errors import ExecuteError, QueryError
from obrasflow.db.tables import get_table, insert_statement, update_statement


def _obra(owner_id, title="Edificio Horizonte"):
    return {"title": title, "endereco": "Rua das Palmeiras, 45", "owner_id": owner_id}


def test_insert_one_generates_uuid_and_select_one_reads_it(tables, settings):
    obra_id = asyncio.run(tables.insert_one("obras", _obra(settings.BOOTSTRAP_HOST_ID)))

    assert uuid.UUID(obra_id).version == 4
    row = asyncio.run(tables.select_one("obras", "id = :id", {"id": obra_id}))
    assert row["title"] == "Edificio Horizonte"
    assert row["status"] == "ativa"
    assert row["created_at"]


def test_update_one_refreshes_updated_at(tables, settings):
    obra_id = asyncio.run(tables.insert_one("obras", _obra(settings.BOOTSTRAP_HOST_ID)))
    before = asyncio.run(tables.select_one("obras", "id = :id", {"id": obra_id}))

    asyncio.run(tables.update_one("obras", obra_id, {"status": "finalizada"}))

    after = asyncio.run(tables.select_one("obras", "id = :id", {"id": obra_id}))
    assert after["status"] == "finalizada"
    assert after["updated_at"] >= before["updated_at"]


def test_list_params_expand_into_in_clause(tables, settings):
    ids = [asyncio.run(tables.insert_one("obras", _obra(settings.BOOTSTRAP_HOST_ID, f"Obra {n}"))) for n in range(3)]

    rows = asyncio.run(tables.select_all("obras", "id IN :ids", {"ids": ids[:2]}, order_by="title"))

    assert [row["title"] for row in rows] == ["Obra 0", "Obra 1"]


def test_failed_batch_leaves_no_partial_rows(store, tables, slot, settings):
    asyncio.run(store.initialize())
    snapshot = slot.get(settings.LOCAL_STORE_KEY)
    good, _ = insert_statement("obras", _obra(settings.BOOTSTRAP_HOST_ID))
    bad, _ = insert_statement("obras", {**_obra(settings.BOOTSTRAP_HOST_ID), "status": "pausada"})

    with pytest.raises(ExecuteError) as excinfo:
        asyncio.run(tables.execute_batch([(good, None), (bad, None)]))

    assert excinfo.value.statement
    assert asyncio.run(tables.select_all("obras")) == []
    assert slot.get(settings.LOCAL_STORE_KEY) == snapshot


def test_query_error_carries_statement_and_params(tables):
    with pytest.raises(QueryError) as excinfo:
        asyncio.run(tables.query("SELECT * FROM tabela_inexistente WHERE id = :id", {"id": "x"}))

    assert "tabela_inexistente" in excinfo.value.statement
    assert excinfo.value.params == {"id": "x"}


def test_insert_into_table_keyed_by_user_id(tables, settings):
    asyncio.run(tables.execute("DELETE FROM user_credentials"))

    statement, key = insert_statement(
        "user_credentials", {"user_id": settings.BOOTSTRAP_HOST_ID, "password_hash": "x"}
    )
    asyncio.run(tables.execute(statement))

    assert key == settings.BOOTSTRAP_HOST_ID
    rows = asyncio.run(tables.select_all("user_credentials"))
    assert [row["user_id"] for row in rows] == [settings.BOOTSTRAP_HOST_ID]


def test_delete_one_removes_row(tables, settings):
    obra_id = asyncio.run(tables.insert_one("obras", _obra(settings.BOOTSTRAP_HOST_ID)))

    asyncio.run(tables.delete_one("obras", obra_id))

    assert asyncio.run(tables.select_one("obras", "id = :id", {"id": obra_id})) is None


def test_unknown_table_is_rejected():
    with pytest.raises(ValueError):
        get_table("clientes")
    with pytest.raises(ValueError):
        update_statement("clientes", "1", {"name": "x"})
