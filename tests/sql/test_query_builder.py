"""Test SQL statement building and execution."""

import pytest

from relorm.errors import DatabaseExecutionError, InvalidClauseValueError
from relorm.sql.query_builder import QueryBuilder


class PostgresStyleAdapter:
    """Compile-only stand-in exposing the postgres dialect and placeholder."""

    dialect = "postgres"
    placeholder = "%s"


def test_compile_select_with_every_clause(db):
    qb = (
        QueryBuilder(db, "user", "u")
        .select("u.name", "COUNT(a.id)")
        .join("address", "a", "LEFT")
        .on("a.user_id", "u.id")
        .where("u.age", ">=", 18)
        .group_by("u.name")
        .having("COUNT(a.id)", ">", 1)
        .order_by("u.name", "DESC")
        .limit(10, 20)
    )

    compiled = qb.compile_select()

    assert compiled.sql == (
        'SELECT "u"."name", COUNT("a"."id") FROM "user" AS "u"'
        ' LEFT JOIN "address" AS "a" ON "a"."user_id" = "u"."id"'
        ' WHERE "u"."age" >= ? GROUP BY "u"."name" HAVING COUNT("a"."id") > ?'
        ' ORDER BY "u"."name" DESC LIMIT 10 OFFSET 20'
    )
    assert compiled.params == (18, 1)


def test_two_argument_where_defaults_to_equality(db):
    compiled = QueryBuilder(db, "user").where("id", 6).compile_select()

    assert compiled.sql == 'SELECT * FROM "user" WHERE "id" = ?'
    assert compiled.params == (6,)


def test_or_where_groups(db):
    compiled = (
        QueryBuilder(db, "user")
        .where("age", ">", 10)
        .where_open()
        .where("name", "shi")
        .or_where("name", "li")
        .where_close()
        .compile_select()
    )

    assert compiled.sql == 'SELECT * FROM "user" WHERE "age" > ? AND ("name" = ? OR "name" = ?)'


def test_distinct_select(db):
    assert QueryBuilder(db, "address").distinct().select("user_id").compile_select().sql == (
        'SELECT DISTINCT "user_id" FROM "address"'
    )


def test_postgres_placeholders():
    compiled = QueryBuilder(PostgresStyleAdapter(), "user").where("id", "IN", [1, 2]).compile_delete()

    assert compiled.sql == 'DELETE FROM "user" WHERE "id" IN (%s, %s)'
    assert compiled.params == (1, 2)


@pytest.mark.parametrize("value", [-1, "10", 1.5, None, True])
def test_limit_must_be_non_negative_integer(db, value):
    with pytest.raises(InvalidClauseValueError):
        QueryBuilder(db, "user").limit(value)


def test_invalid_table_name_rejected(db):
    with pytest.raises(InvalidClauseValueError):
        QueryBuilder(db, 'user"; DROP TABLE x; --')


def test_compile_without_table_fails(db):
    with pytest.raises(InvalidClauseValueError, match="No table"):
        QueryBuilder(db).compile_select()


def test_compile_insert_update_delete(db):
    qb = QueryBuilder(db, "user")

    insert = qb.compile_insert({"name": "shi", "age": 12}, returning="id")
    assert insert.sql == 'INSERT INTO "user" ("name", "age") VALUES (?, ?) RETURNING "id"'
    assert insert.params == ("shi", 12)

    qb.where("id", 3).order_by("id").limit(1)
    update = qb.compile_update({"name": "li"})
    assert update.sql == 'UPDATE "user" SET "name" = ? WHERE "id" = ?'
    assert update.params == ("li", 3)

    delete = qb.compile_delete()
    assert delete.sql == 'DELETE FROM "user" WHERE "id" = ?'
    assert delete.params == (3,)


def test_insert_without_data_uses_defaults(db):
    insert = QueryBuilder(db, "user").compile_insert({}, returning="id")

    assert insert.sql == 'INSERT INTO "user" DEFAULT VALUES RETURNING "id"'
    assert insert.params == ()
    assert QueryBuilder(db, "user").insert({}, returning="id") == 1


def test_update_requires_data(db):
    with pytest.raises(InvalidClauseValueError):
        QueryBuilder(db, "user").compile_update({})


def test_compile_count(db):
    assert QueryBuilder(db, "user").where("age", ">", 1).order_by("id").limit(5).compile_count().sql == (
        'SELECT COUNT(*) FROM "user" WHERE "age" > ?'
    )
    assert QueryBuilder(db, "address").group_by("user_id").compile_count().sql == (
        'SELECT COUNT(*) FROM (SELECT "user_id" FROM "address" GROUP BY "user_id") AS counted'
    )


def test_clone_does_not_share_clauses(db):
    base = QueryBuilder(db, "user").where("age", ">", 1)
    clone = base.clone().where("name", "shi").order_by("id")

    assert base.compile_select().sql == 'SELECT * FROM "user" WHERE "age" > ?'
    assert clone.compile_select().sql == 'SELECT * FROM "user" WHERE "age" > ? AND "name" = ? ORDER BY "id" ASC'


def test_clear_keeps_table(db):
    qb = QueryBuilder(db, "user").select("id").where("id", 1).limit(3)
    qb.clear()

    assert qb.compile_select().sql == 'SELECT * FROM "user"'


def test_execute_roundtrip(db):
    qb = QueryBuilder(db, "user")
    first = qb.insert({"name": "shi", "age": 12}, returning="id")
    second = QueryBuilder(db, "user").insert({"name": "li", "age": 30}, returning="id")

    assert QueryBuilder(db, "user").insert({"name": "wang", "age": 40}) == 1
    assert first != second

    rows = QueryBuilder(db, "user").where("age", "<", 35).order_by("age").find_rows()
    assert [r["name"] for r in rows] == ["shi", "li"]

    row = QueryBuilder(db, "user").where("id", second).find_row()
    assert row["name"] == "li"
    assert QueryBuilder(db, "user").where("id", -1).find_row() is None

    assert QueryBuilder(db, "user").where("age", ">", 20).count() == 2
    assert QueryBuilder(db, "user").where("age", ">", 20).update({"avatar": "x.png"}) == 2
    assert QueryBuilder(db, "user").where("avatar", None).count() == 1
    assert QueryBuilder(db, "user").where("name", "IN", ["li", "wang"]).delete() == 2
    assert QueryBuilder(db, "user").count() == 1


def test_database_errors_are_wrapped(db):
    with pytest.raises(DatabaseExecutionError) as exc_info:
        QueryBuilder(db, "missing_table").find_rows()

    assert exc_info.value.sql == 'SELECT * FROM "missing_table"'
    assert exc_info.value.__cause__ is not None
