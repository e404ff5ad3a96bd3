"""Unit tests for QueryExecutor and result shaping

Uses FakeConnection instead of a live database.
"""

import asyncio
import datetime
from decimal import Decimal

import pytest
from sqlalchemy import exc as sa_exc

from pg_ops_mcp.core.executor import QueryExecutor, command_tag, shape_result
from pg_ops_mcp.errors import QueryError
from pg_ops_mcp.models.operations import Delete, ExecuteQuery, Insert, Select, Update
from pg_ops_mcp.models.query import BuiltStatement, ExecutionResult, FieldInfo
from tests.fakes import FakeConnection, FakeResult


class FakeDriverError(Exception):
    """Exception carrying a SQLSTATE, like asyncpg's PostgresError."""

    def __init__(self, message: str, sqlstate: str):
        super().__init__(message)
        self.sqlstate = sqlstate


def wrap(orig: Exception) -> sa_exc.DBAPIError:
    """Wrap a driver exception the way SQLAlchemy does."""
    return sa_exc.ProgrammingError("SELECT", None, orig)


class TestCommandTag:
    """Test command keyword detection."""

    @pytest.mark.parametrize(
        "sql,expected",
        [
            ("SELECT 1", "SELECT"),
            ("  select * from t", "SELECT"),
            ("insert into t values (1)", "INSERT"),
            ("UPDATE t SET a = 1", "UPDATE"),
            ("DELETE FROM t", "DELETE"),
            ("CREATE TABLE t (id int)", "CREATE"),
            ("(SELECT 1)", "SELECT"),
            ("-- leading comment\nDELETE FROM t", "DELETE"),
            ("/* block */ update t set a = 1", "UPDATE"),
            ("WITH x AS (SELECT 1) SELECT * FROM x", "SELECT"),
            ("WITH x AS (SELECT 1) INSERT INTO t SELECT * FROM x", "INSERT"),
            ("with d as (delete from t returning *) select count(*) from d", "SELECT"),
            ("COPY t FROM STDIN", "COPY"),
            ("SELECT 1; DELETE FROM t", "SELECT"),
        ],
    )
    def test_command_tag(self, sql, expected):
        assert command_tag(sql) == expected

    @pytest.mark.parametrize("sql", ["", "   ", "-- only a comment"])
    def test_empty_statement(self, sql):
        assert command_tag(sql) is None


class TestQueryExecutor:
    """Test statement execution and normalization."""

    @pytest.mark.asyncio
    async def test_rows_and_fields(self):
        conn = FakeConnection(
            lambda sql, params: FakeResult(
                columns=["id", "name"],
                rows=[(1, "a"), (2, "b")],
                rowcount=2,
                type_ids=[23, 25],
            )
        )
        statement = BuiltStatement(sql="SELECT id, name FROM t WHERE id > $1", params=("0",))

        result = await QueryExecutor().execute(conn, statement)

        assert conn.calls == [("SELECT id, name FROM t WHERE id > $1", ("0",))]
        assert result.rows == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
        assert result.row_count == 2
        assert result.command == "SELECT"
        assert result.fields == [
            FieldInfo(name="id", type_id=23),
            FieldInfo(name="name", type_id=25),
        ]

    @pytest.mark.asyncio
    async def test_command_without_rows(self):
        conn = FakeConnection(lambda sql, params: FakeResult(rowcount=3))
        statement = BuiltStatement(sql="DELETE FROM t WHERE a = $1", params=("x",))

        result = await QueryExecutor().execute(conn, statement)

        assert result.rows == []
        assert result.row_count == 3
        assert result.command == "DELETE"
        assert result.fields is None
        assert result.is_empty

    @pytest.mark.asyncio
    async def test_unknown_rowcount_falls_back_to_rows(self):
        conn = FakeConnection(
            lambda sql, params: FakeResult(columns=["n"], rows=[(1,), (2,), (3,)])
        )
        result = await QueryExecutor().execute(conn, BuiltStatement(sql="SELECT n FROM t"))
        assert result.row_count == 3

    @pytest.mark.asyncio
    async def test_values_are_json_safe(self):
        created = datetime.datetime(2024, 1, 15, 10, 30)
        conn = FakeConnection(
            lambda sql, params: FakeResult(
                columns=["price", "created", "raw"],
                rows=[(Decimal("19.99"), created, b"abc")],
                rowcount=1,
            )
        )
        result = await QueryExecutor().execute(conn, BuiltStatement(sql="SELECT 1"))
        row = result.first_row
        assert row == {"price": "19.99", "created": "2024-01-15T10:30:00", "raw": "abc"}

    @pytest.mark.asyncio
    async def test_server_error_becomes_query_error(self):
        orig = FakeDriverError('syntax error at or near "SELEC"', "42601")
        conn = FakeConnection(lambda sql, params: wrap(orig))

        with pytest.raises(QueryError) as exc_info:
            await QueryExecutor().execute(conn, BuiltStatement(sql="SELEC 1"))

        error = exc_info.value
        assert str(error) == 'syntax error at or near "SELEC"'
        assert error.sqlstate == "42601"
        assert error.code == "42601"
        assert error.kind == "query"
        assert error.details.startswith("QueryError: ")

    @pytest.mark.asyncio
    async def test_constraint_violation(self):
        orig = FakeDriverError("duplicate key value violates unique constraint", "23505")
        conn = FakeConnection(lambda sql, params: wrap(orig))

        with pytest.raises(QueryError) as exc_info:
            await QueryExecutor().execute(conn, BuiltStatement(sql="INSERT INTO t VALUES (1)"))

        assert exc_info.value.code == "23505"

    @pytest.mark.asyncio
    async def test_timeout_becomes_query_error(self):
        conn = FakeConnection(lambda sql, params: asyncio.TimeoutError())

        with pytest.raises(QueryError) as exc_info:
            await QueryExecutor().execute(conn, BuiltStatement(sql="SELECT pg_sleep(10)"))

        assert exc_info.value.is_timeout
        assert exc_info.value.code == "ETIMEDOUT"
        assert str(exc_info.value).startswith("Connection timeout")

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        conn = FakeConnection(
            lambda sql, params: ConnectionRefusedError(111, "Connection refused")
        )

        with pytest.raises(QueryError) as exc_info:
            await QueryExecutor().execute(conn, BuiltStatement(sql="SELECT 1"))

        assert exc_info.value.code == "ECONNREFUSED"
        assert exc_info.value.kind == "connection"


class TestShapeResult:
    """Test per-operation result shaping."""

    @pytest.fixture
    def result(self) -> ExecutionResult:
        return ExecutionResult(
            rows=[{"id": 1}, {"id": 2}],
            row_count=2,
            command="SELECT",
            fields=[FieldInfo(name="id", type_id=23)],
        )

    def test_execute_query(self, result):
        shaped = shape_result(ExecuteQuery(query="SELECT id FROM t"), result)
        assert shaped == {
            "rows": [{"id": 1}, {"id": 2}],
            "rowCount": 2,
            "command": "SELECT",
            "fields": [{"name": "id", "typeId": 23}],
        }

    def test_select(self, result):
        shaped = shape_result(Select(table="t"), result)
        assert shaped == {"rows": [{"id": 1}, {"id": 2}], "rowCount": 2}

    def test_insert_returns_first_row(self, result):
        shaped = shape_result(Insert(table="t", columns_map={"a": 1}), result)
        assert shaped == {"inserted": {"id": 1}, "rowCount": 2}

    def test_insert_without_rows(self):
        shaped = shape_result(Insert(table="t"), ExecutionResult(row_count=1))
        assert shaped == {"inserted": None, "rowCount": 1}

    def test_update_returns_all_rows(self, result):
        shaped = shape_result(Update(table="t", where="id > 0"), result)
        assert shaped == {"updated": [{"id": 1}, {"id": 2}], "rowCount": 2}

    def test_delete(self):
        shaped = shape_result(Delete(table="t", where="id = 1"), ExecutionResult(row_count=0))
        assert shaped == {"deleted": True, "rowCount": 0}
