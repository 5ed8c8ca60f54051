import asyncio
import unittest

from obrasflow.core import authorization
from obrasflow.core.errors import PermissionLookupError, QueryError
from obrasflow.repositories import accounts, obras, permissions
from obrasflow.schemas import Obra, ObraCreate


def _obras(*ids):
    return [Obra(id=obra_id, title=f"Obra {obra_id}", endereco="Rua A", owner_id="host-a") for obra_id in ids]


class StaticSource(authorization.PermissionSource):
    def __init__(self, allowed=(), error=None):
        self.allowed = set(allowed)
        self.error = error

    async def permitted_obra_ids(self, user_id):
        if self.error:
            raise self.error
        return set(self.allowed)

    async def has_permission_row(self, user_id, obra_id):
        if self.error:
            raise self.error
        return obra_id in self.allowed


class BrokenTables:
    async def query(self, sql, params=None):
        raise QueryError("disk I/O error", sql, params)


class PermissionFilterTests(unittest.TestCase):
    def test_host_sees_every_obra_in_order(self):
        obras = _obras("o1", "o2", "o3", "o4", "o5")

        result = asyncio.run(authorization.get_filtered_obras(StaticSource(), "host-a", "host", obras))

        self.assertEqual([obra.id for obra in result], ["o1", "o2", "o3", "o4", "o5"])

    def test_funcionario_sees_only_permitted_obras(self):
        obras = _obras("o1", "o2", "o3", "o4", "o5")

        result = asyncio.run(
            authorization.get_filtered_obras(StaticSource({"o3", "o1"}), "emp-a", "funcionario", obras)
        )

        self.assertEqual([obra.id for obra in result], ["o1", "o3"])

    def test_funcionario_without_rows_sees_nothing(self):
        result = asyncio.run(authorization.get_filtered_obras(StaticSource(), "emp-b", "funcionario", _obras("o1")))

        self.assertEqual(result, [])

    def test_lookup_error_fails_closed(self):
        source = StaticSource({"o1"}, error=PermissionLookupError("offline"))

        with self.assertLogs("obrasflow.authorization", level="ERROR"):
            result = asyncio.run(authorization.get_filtered_obras(source, "emp-a", "funcionario", _obras("o1")))
        self.assertEqual(result, [])
        self.assertFalse(asyncio.run(authorization.has_obra_permission(source, "emp-a", "funcionario", "o1")))
        self.assertEqual(asyncio.run(authorization.get_user_permissions(source, "emp-a")), set())

    def test_raising_variants_let_lookup_errors_through(self):
        source = StaticSource({"o1"}, error=PermissionLookupError("offline"))

        with self.assertRaises(PermissionLookupError):
            asyncio.run(authorization.filter_permitted_obras(source, "emp-a", "funcionario", _obras("o1")))
        with self.assertRaises(PermissionLookupError):
            asyncio.run(authorization.check_obra_permission(source, "emp-a", "funcionario", "o1"))
        self.assertTrue(asyncio.run(authorization.check_obra_permission(source, "host-a", "host", "o1")))

    def test_local_source_wraps_query_errors(self):
        source = authorization.LocalPermissionSource(BrokenTables())

        with self.assertRaises(PermissionLookupError):
            asyncio.run(source.permitted_obra_ids("emp-a"))
        result = asyncio.run(authorization.get_filtered_obras(source, "emp-a", "funcionario", _obras("o1")))
        self.assertEqual(result, [])

    def test_has_obra_permission(self):
        source = StaticSource({"o1"})

        self.assertTrue(asyncio.run(authorization.has_obra_permission(source, "host-a", "host", "o9")))
        self.assertTrue(asyncio.run(authorization.has_obra_permission(source, "emp-a", "funcionario", "o1")))
        self.assertFalse(asyncio.run(authorization.has_obra_permission(source, "emp-a", "funcionario", "o2")))


def test_employee_without_permission_rows_gets_no_obras(tables, settings):
    async def _scenario():
        host_a = await accounts.create_user(
            tables, name="Host A", email="host.a@empresa.com", role="host", password="senha-a", cnpj="111"
        )
        site = await obras.create_obra(tables, ObraCreate(title="Site 1", endereco="Rua A", owner_id=host_a.id))
        emp_b = await accounts.add_employee(tables, host_a, name="Emp B", email="emp.b@empresa.com", password="senha-b")
        return site, emp_b

    site, emp_b = asyncio.run(_scenario())
    source = authorization.LocalPermissionSource(tables)

    visible = asyncio.run(authorization.get_filtered_obras(source, emp_b.id, emp_b.role, [site]))
    assert visible == []

    asyncio.run(permissions.set_user_obra_permission(tables, emp_b.id, site.id, True, False))
    visible = asyncio.run(authorization.get_filtered_obras(source, emp_b.id, emp_b.role, [site]))
    assert [obra.id for obra in visible] == [site.id]
