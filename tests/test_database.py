import pytest

from database import DocumentStore
from errors import StorageError
from validators import IdValidator


def test_insert_assigns_id_and_revision(store):
    doc = store.insert("books", {"title": "Ulysses", "commentRefs": []})

    assert IdValidator.is_valid_id(doc["_id"])
    assert doc["__v"] == 0
    assert store.find_by_id("books", doc["_id"])["title"] == "Ulysses"


def test_find_by_id_missing_returns_none(store):
    assert store.find_by_id("books", "0" * 24) is None


def test_push_appends_in_order_and_bumps_revision(store):
    doc = store.insert("books", {"title": "Sapiens", "commentRefs": []})

    store.push("books", doc["_id"], "commentRefs", "a" * 24)
    updated = store.push("books", doc["_id"], "commentRefs", "b" * 24)

    assert updated["commentRefs"] == ["a" * 24, "b" * 24]
    assert updated["__v"] == 2


def test_push_unknown_document_returns_none(store):
    assert store.push("books", "f" * 24, "commentRefs", "a" * 24) is None


def test_pull_all_removes_values(store):
    doc = store.insert("books", {"title": "Dune", "commentRefs": ["x", "y", "x", "z"]})

    updated = store.pull_all("books", doc["_id"], "commentRefs", ["x", "z"])

    assert updated["commentRefs"] == ["y"]
    assert updated["__v"] == 1


def test_set_field_replaces_value_and_bumps_revision(store):
    doc = store.insert("books", {"title": "Dune", "commentRefs": ["x", "x"]})

    updated = store.set_field("books", doc["_id"], "commentRefs", ["x"])

    assert updated["commentRefs"] == ["x"]
    assert updated["title"] == "Dune"
    assert updated["__v"] == 1
    assert store.set_field("books", "f" * 24, "commentRefs", []) is None


def test_find_many_and_delete_many_by_field(store):
    store.insert("comments", {"text": "one", "bookId": "b1"})
    store.insert("comments", {"text": "two", "bookId": "b1"})
    store.insert("comments", {"text": "three", "bookId": "b2"})

    assert [d["text"] for d in store.find_many("comments", "bookId", "b1")] == ["one", "two"]
    assert store.delete_many("comments", "bookId", "b1") == 2
    assert store.count("comments") == 1
    assert store.delete_many("comments") == 1
    assert store.count("comments") == 0


def test_lookup_follows_array_order_and_skips_unmatched(store):
    first = store.insert("comments", {"text": "first", "bookId": "x"})
    second = store.insert("comments", {"text": "second", "bookId": "x"})
    store.insert("books", {"title": "A", "commentRefs": [second["_id"], "9" * 24, first["_id"]]})
    store.insert("books", {"title": "B", "commentRefs": []})

    joined = store.lookup("books", "comments", local_field="commentRefs", foreign_field="_id", as_field="comments")

    assert [doc["title"] for doc in joined] == ["A", "B"]
    assert [c["text"] for c in joined[0]["comments"]] == ["second", "first"]
    assert joined[1]["comments"] == []


def test_lookup_on_scalar_field(store):
    book = store.insert("books", {"title": "A", "commentRefs": []})
    store.insert("comments", {"text": "owned", "bookId": book["_id"]})
    store.insert("comments", {"text": "orphan", "bookId": "1" * 24})

    joined = store.lookup("comments", "books", local_field="bookId", foreign_field="_id", as_field="book")

    owners = {doc["text"]: [b["title"] for b in doc["book"]] for doc in joined}
    assert owners == {"owned": ["A"], "orphan": []}


def test_lookup_on_id_against_foreign_field(store):
    book = store.insert("books", {"title": "A", "commentRefs": []})
    store.insert("comments", {"text": "c1", "bookId": book["_id"]})
    store.insert("comments", {"text": "c2", "bookId": book["_id"]})

    joined = store.lookup("books", "comments", local_field="_id", foreign_field="bookId", as_field="comments")

    assert [c["text"] for c in joined[0]["comments"]] == ["c1", "c2"]


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert("books", {"title": "Gone", "commentRefs": []})
            raise RuntimeError("boom")

    assert store.count("books") == 0


def test_nested_transaction_joins_outer(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            with store.transaction():
                store.insert("books", {"title": "Inner", "commentRefs": []})
            store.insert("books", {"title": "Outer", "commentRefs": []})
            raise RuntimeError("boom")

    assert store.count("books") == 0


def test_closed_store_raises_storage_error(db_file):
    store = DocumentStore(db_file=db_file)

    with pytest.raises(StorageError):
        store.find_all("books")


def test_unreachable_database_raises_storage_error(tmp_path):
    store = DocumentStore(db_file=str(tmp_path / "missing" / "dir" / "catalog.db"))

    with pytest.raises(StorageError):
        store.open()


def test_unknown_collection_is_rejected(store):
    with pytest.raises(ValueError):
        store.find_all("authors")


def test_data_persists_across_connections(db_file):
    with DocumentStore(db_file=db_file) as store:
        doc = store.insert("books", {"title": "Persisted", "commentRefs": []})

    with DocumentStore(db_file=db_file) as store:
        assert store.find_by_id("books", doc["_id"])["title"] == "Persisted"
