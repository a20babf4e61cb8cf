"""Tests for the SQLite storage engine."""

import json

import pytest

from doclite.errors import StorageFailure
from doclite.filters import compile_filter
from doclite.storage import SQLiteEngine, quote_identifier


@pytest.fixture
def engine():
    eng = SQLiteEngine()
    eng.ensure_collection("docs")
    yield eng
    eng.close()


class TestSchema:

    def test_ensure_collection_is_idempotent(self, engine):
        engine.upsert("docs", "a", '{"n": 1}')
        engine.ensure_collection("docs")
        assert engine.get("docs", "a") == '{"n":1}'

    def test_list_collections_ignores_other_tables(self, engine):
        engine.conn.execute("CREATE TABLE other (a INTEGER, b TEXT)")
        engine.ensure_collection("more")
        assert engine.list_collections() == ["docs", "more"]
        assert engine.has_collection("docs")
        assert not engine.has_collection("other")

    def test_awkward_collection_names(self, engine):
        name = 'my "docs"; drop'
        engine.ensure_collection(name)
        engine.upsert(name, "k", "{}")
        assert engine.get(name, "k") == "{}"

    def test_quote_identifier(self):
        assert quote_identifier("Person") == '"Person"'
        assert quote_identifier('a"b') == '"a""b"'
        with pytest.raises(StorageFailure):
            quote_identifier("")


class TestWrites:

    def test_upsert_replaces(self, engine):
        engine.upsert("docs", "a", '{"n": 1}')
        engine.upsert("docs", "a", '{"n": 2}')
        assert engine.count("docs") == 1
        assert json.loads(engine.get("docs", "a")) == {"n": 2}

    def test_invalid_json_rejected(self, engine):
        with pytest.raises(StorageFailure):
            engine.upsert("docs", "a", "{broken")
        assert engine.count("docs") == 0

    def test_missing_table(self, engine):
        with pytest.raises(StorageFailure):
            engine.upsert("nowhere", "a", "{}")

    def test_delete(self, engine):
        engine.upsert("docs", "a", "{}")
        assert engine.delete("docs", "a") is True
        assert engine.delete("docs", "a") is False
        assert not engine.exists("docs", "a")


class TestTransaction:

    def test_commit(self, engine):
        with engine.transaction() as tx:
            tx.upsert("docs", "a", "{}")
            tx.upsert("docs", "b", "{}")
        assert engine.count("docs") == 2
        assert tx.writes == 2

    def test_rollback_on_error(self, engine):
        engine.upsert("docs", "keep", '{"v": 1}')
        with pytest.raises(RuntimeError):
            with engine.transaction() as tx:
                tx.upsert("docs", "keep", '{"v": 2}')
                tx.upsert("docs", "new", "{}")
                raise RuntimeError("abort")
        assert engine.count("docs") == 1
        assert json.loads(engine.get("docs", "keep")) == {"v": 1}

    def test_sqlite_error_becomes_storage_failure(self, engine):
        with pytest.raises(StorageFailure):
            with engine.transaction() as tx:
                tx.upsert("docs", "a", "{}")
                tx.upsert("docs", "b", "{broken")
        assert engine.count("docs") == 0

    def test_transaction_delete(self, engine):
        engine.upsert("docs", "a", "{}")
        with engine.transaction() as tx:
            assert tx.delete("docs", "a") is True
            assert tx.delete("docs", "zzz") is False
        assert engine.count("docs") == 0

    def test_autocommit_restored(self, engine):
        with pytest.raises(RuntimeError):
            with engine.transaction():
                raise RuntimeError("abort")
        assert not engine.conn.in_transaction
        engine.upsert("docs", "a", "{}")
        assert not engine.conn.in_transaction


class TestReads:

    def test_select_json_empty(self, engine):
        assert engine.select_json("docs") == "[]"

    def test_select_json_embeds_documents(self, engine):
        engine.upsert("docs", "a", '{"n": 1}')
        engine.upsert("docs", "b", '{"n": 2}')
        assert json.loads(engine.select_json("docs")) == [{"n": 1}, {"n": 2}]

    def test_select_json_with_filter(self, engine):
        for i in range(5):
            engine.upsert("docs", str(i), json.dumps({"n": i, "s": f"v{i}"}))
        where = compile_filter("n>1&&s!=v3")
        assert json.loads(engine.select_json("docs", where)) == [
            {"n": 2, "s": "v2"}, {"n": 4, "s": "v4"},
        ]
        assert engine.count("docs", where) == 2

    def test_integer_and_text_binding_differ(self, engine):
        engine.upsert("docs", "num", '{"code": 42}')
        engine.upsert("docs", "str", '{"code": "42"}')
        assert json.loads(engine.select_json("docs", compile_filter("code=42"))) == [
            {"code": 42},
        ]
        assert json.loads(engine.select_json("docs", compile_filter('code="42"'))) == [
            {"code": "42"},
        ]

    def test_negative_window_rejected(self, engine):
        with pytest.raises(ValueError):
            engine.select_json("docs", limit=-1)

    def test_closed_engine(self):
        eng = SQLiteEngine()
        eng.close()
        eng.close()
        with pytest.raises(StorageFailure, match="closed"):
            eng.get("docs", "a")
