import asyncio

import pytest
from pydantic import ValidationError

from obrasflow.core.errors import RepositoryError
from obrasflow.repositories import accounts, estabelecimentos, ferramentas, historico, obras, permissions
from obrasflow.schemas import (
    EstabelecimentoCreate,
    EstabelecimentoUpdate,
    FerramentaCreate,
    FerramentaUpdate,
    Location,
    ObraCreate,
    ObraUpdate,
)


def _create_obra(tables, owner_id, title="Residencial Aurora", **extra):
    payload = ObraCreate(title=title, endereco="Rua A, 10", owner_id=owner_id, **extra)
    return asyncio.run(obras.create_obra(tables, payload))


def _create_ferramenta(tables, owner, name="Furadeira Bosch", location=None, **extra):
    payload = FerramentaCreate(name=name, owner_id=owner.id, cadastrado_por=owner.id, location=location, **extra)
    return asyncio.run(ferramentas.create_ferramenta(tables, payload))


def test_obra_crud_and_active_filter(tables, company):
    ativa = _create_obra(tables, company.host.id, "Obra Ativa")
    finalizada = _create_obra(tables, company.partner.id, "Obra Finalizada")
    asyncio.run(obras.update_obra(tables, finalizada.id, ObraUpdate(status="finalizada")))

    owner_ids = [company.host.id, company.partner.id]
    todas = asyncio.run(obras.get_obras_by_owner_ids(tables, owner_ids))
    ativas = asyncio.run(obras.get_active_obras_by_owner_ids(tables, owner_ids))

    assert {obra.id for obra in todas} == {ativa.id, finalizada.id}
    assert [obra.id for obra in ativas] == [ativa.id]
    assert asyncio.run(obras.get_obras_by_owner_ids(tables, [])) == []

    asyncio.run(obras.delete_obra(tables, ativa.id))
    assert asyncio.run(obras.get_obra(tables, ativa.id)) is None


def test_obra_end_date_before_start_date_is_rejected():
    with pytest.raises(ValidationError):
        ObraCreate(title="X", endereco="Y", owner_id="h", start_date="2024-05-10", end_date="2024-05-01")


def test_obra_images_get_next_display_order(tables, company):
    obra = _create_obra(tables, company.host.id)

    first = asyncio.run(obras.add_obra_image(tables, obra.id, "https://img/1.jpg", company.host.id))
    second = asyncio.run(obras.add_obra_image(tables, obra.id, "https://img/2.jpg", company.host.id))

    assert (first.display_order, second.display_order) == (0, 1)
    images = asyncio.run(obras.get_obra_images(tables, obra.id))
    assert [image.image_url for image in images] == ["https://img/1.jpg", "https://img/2.jpg"]


def test_estabelecimentos_are_ordered_by_name(tables, company):
    for name in ("Deposito Sul", "Almoxarifado Norte"):
        asyncio.run(
            estabelecimentos.create_estabelecimento(
                tables, EstabelecimentoCreate(name=name, endereco="Av. B", owner_id=company.host.id)
            )
        )

    found = asyncio.run(estabelecimentos.get_estabelecimentos_by_owner_ids(tables, [company.host.id]))

    assert [item.name for item in found] == ["Almoxarifado Norte", "Deposito Sul"]


def test_ferramenta_location_round_trips(tables, company):
    obra = _create_obra(tables, company.host.id)
    ferramenta = _create_ferramenta(tables, company.host, location=Location(kind="obra", id=obra.id))

    assert ferramenta.location == Location(kind="obra", id=obra.id)
    at_obra = asyncio.run(ferramentas.get_ferramentas_at(tables, Location(kind="obra", id=obra.id)))
    assert [item.id for item in at_obra] == [ferramenta.id]

    asyncio.run(ferramentas.update_ferramenta(tables, ferramenta.id, FerramentaUpdate(location=None)))
    assert asyncio.run(ferramentas.get_ferramenta(tables, ferramenta.id)).location is None


def test_desaparecidas_only_lists_missing_tools(tables, company):
    _create_ferramenta(tables, company.host, "Serra Circular")
    sumida = _create_ferramenta(tables, company.partner, "Esmerilhadeira", status="desaparecida")

    found = asyncio.run(
        ferramentas.get_desaparecidas_by_owner_ids(tables, [company.host.id, company.partner.id])
    )

    assert [item.id for item in found] == [sumida.id]


def test_record_movimentacao_relocates_and_writes_historico(tables, company):
    obra = _create_obra(tables, company.host.id)
    deposito = asyncio.run(
        estabelecimentos.create_estabelecimento(
            tables, EstabelecimentoCreate(name="Deposito", endereco="Av. B", owner_id=company.host.id)
        )
    )
    ferramenta = _create_ferramenta(tables, company.host, location=Location(kind="estabelecimento", id=deposito.id))
    destino = Location(kind="obra", id=obra.id)

    movimento = asyncio.run(
        ferramentas.record_movimentacao(
            tables, ferramenta.id, destino, company.funcionario.id, note="Levada para a laje", status="em_uso"
        )
    )

    assert movimento.origin == Location(kind="estabelecimento", id=deposito.id)
    assert movimento.destination == destino
    atualizada = asyncio.run(ferramentas.get_ferramenta(tables, ferramenta.id))
    assert atualizada.location == destino
    assert atualizada.status == "em_uso"

    entradas = asyncio.run(historico.get_historico_by_owner_ids(tables, [company.host.id]))
    assert len(entradas) == 1
    assert entradas[0].action == "movimentacao"
    assert entradas[0].user_name == "Joao Pedreiro"
    assert entradas[0].ferramenta_name == "Furadeira Bosch"
    assert entradas[0].location == destino

    movimentos = asyncio.run(ferramentas.get_movimentacoes_by_owner_ids(tables, [company.host.id]))
    assert [item.ferramenta_name for item in movimentos] == ["Furadeira Bosch"]


def test_failed_movimentacao_changes_nothing(tables, company):
    obra = _create_obra(tables, company.host.id)
    ferramenta = _create_ferramenta(tables, company.host)

    with pytest.raises(RepositoryError):
        asyncio.run(
            ferramentas.record_movimentacao(tables, ferramenta.id, Location(kind="obra", id=obra.id), "usuario-inexistente")
        )

    assert asyncio.run(ferramentas.get_ferramenta(tables, ferramenta.id)).location is None
    assert asyncio.run(ferramentas.get_movimentacoes_by_ferramenta(tables, ferramenta.id)) == []
    assert asyncio.run(historico.get_historico_by_ferramenta(tables, ferramenta.id)) == []


def test_deleting_ferramenta_cascades_to_movements_and_historico(tables, company):
    obra = _create_obra(tables, company.host.id)
    ferramenta = _create_ferramenta(tables, company.host)
    asyncio.run(
        ferramentas.record_movimentacao(tables, ferramenta.id, Location(kind="obra", id=obra.id), company.host.id)
    )
    asyncio.run(
        permissions.set_user_ferramenta_permission(tables, company.funcionario.id, ferramenta.id, True, False)
    )

    asyncio.run(ferramentas.delete_ferramenta(tables, ferramenta.id))

    for table in ("movimentacoes", "historico", "user_ferramenta_permissions"):
        assert asyncio.run(tables.select_all(table)) == []


def test_permission_upsert_keeps_one_row_per_pair(tables, company):
    obra = _create_obra(tables, company.host.id)
    user_id = company.funcionario.id

    asyncio.run(permissions.set_user_obra_permission(tables, user_id, obra.id, True, False, host_id=company.host.id))
    asyncio.run(permissions.set_user_obra_permission(tables, user_id, obra.id, True, True))

    rows = asyncio.run(permissions.get_user_obra_permissions(tables, user_id))
    assert len(rows) == 1
    assert rows[0].can_edit is True
    assert rows[0].host_id == company.host.id

    asyncio.run(permissions.delete_user_obra_permission(tables, user_id, obra.id))
    assert asyncio.run(permissions.permitted_obra_ids(tables, user_id)) == set()


def test_owner_ids_cover_every_host_of_the_company(tables, company):
    host_ids = asyncio.run(accounts.resolve_owner_ids(tables, company.host))
    funcionario_ids = asyncio.run(accounts.resolve_owner_ids(tables, company.funcionario))

    assert set(host_ids) == {company.host.id, company.partner.id}
    assert set(funcionario_ids) == set(host_ids)


def test_owner_ids_fall_back_to_the_user_itself(tables, company):
    sem_cnpj = company.host.model_copy(update={"id": "host-solo", "cnpj": None})

    assert asyncio.run(accounts.resolve_company_host_ids(tables, sem_cnpj)) == ["host-solo"]


def test_estabelecimento_update_and_delete(tables, company):
    deposito = asyncio.run(
        estabelecimentos.create_estabelecimento(
            tables, EstabelecimentoCreate(name="Deposito", endereco="Av. B", owner_id=company.host.id)
        )
    )

    asyncio.run(
        estabelecimentos.update_estabelecimento(tables, deposito.id, EstabelecimentoUpdate(endereco="Av. C, 300"))
    )
    assert asyncio.run(estabelecimentos.get_estabelecimento(tables, deposito.id)).endereco == "Av. C, 300"

    asyncio.run(estabelecimentos.delete_estabelecimento(tables, deposito.id))
    assert asyncio.run(estabelecimentos.get_estabelecimento(tables, deposito.id)) is None


def test_historico_entry_without_location(tables, company):
    ferramenta = _create_ferramenta(tables, company.host)

    asyncio.run(historico.create_historico_entry(tables, ferramenta.id, company.host.id, "cadastro", "Nova"))

    entradas = asyncio.run(historico.get_historico_by_ferramenta(tables, ferramenta.id))
    assert [(entry.action, entry.details, entry.location) for entry in entradas] == [("cadastro", "Nova", None)]


def test_deleting_obra_removes_its_images(tables, company):
    obra = _create_obra(tables, company.host.id)
    image = asyncio.run(obras.add_obra_image(tables, obra.id, "https://img/1.jpg", company.host.id))
    asyncio.run(obras.add_obra_image(tables, obra.id, "https://img/2.jpg", company.host.id))

    asyncio.run(obras.delete_obra_image(tables, image.id))
    assert [item.image_url for item in asyncio.run(obras.get_obra_images(tables, obra.id))] == ["https://img/2.jpg"]

    asyncio.run(obras.delete_obra(tables, obra.id))
    assert asyncio.run(tables.select_all("obra_images")) == []
