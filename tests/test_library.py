import pytest

from consistency import DeleteOutcome
from errors import NotFound, ValidationError
from library import Library


def test_create_and_list(lib):
    assert lib.list_books() == []

    book = lib.create_book("Ulysses")

    assert book.title == "Ulysses"
    assert book.comment_refs == []
    views = lib.list_books()
    assert len(views) == 1
    assert views[0].to_dict() == {
        "_id": book.id,
        "title": "Ulysses",
        "comments": [],
        "commentcount": 0,
        "__v": 0,
    }


@pytest.mark.parametrize("title", ["", "   ", None])
def test_create_book_without_title_inserts_nothing(lib, title):
    with pytest.raises(ValidationError, match="missing required field title"):
        lib.create_book(title)

    assert lib.count_books() == 0


def test_get_book_not_found(lib):
    with pytest.raises(NotFound):
        lib.get_book("5f0c2b9a8d1e4f3a2b1c0d9e")


def test_get_book_with_malformed_id_is_not_found(lib):
    with pytest.raises(NotFound):
        lib.get_book("not-an-id")


def test_attach_comment_appends_last(lib):
    book = lib.create_book("Testowy")
    lib.attach_comment(book.id, "first")
    before = lib.get_book(book.id)

    view = lib.attach_comment(book.id, "nice")

    assert view.comments[-1] == "nice"
    after = lib.get_book(book.id)
    assert after.comments == ["first", "nice"]
    assert after.commentcount == before.commentcount + 1
    assert after.revision == before.revision + 1


def test_attach_comment_empty_text(lib):
    book = lib.create_book("Testowy")

    with pytest.raises(ValidationError, match="missing required field comment"):
        lib.attach_comment(book.id, "")

    assert lib.get_book(book.id).commentcount == 0


def test_attach_comment_to_missing_book(lib):
    with pytest.raises(NotFound):
        lib.attach_comment("5f0c2b9a8d1e4f3a2b1c0d9e", "x")

    with pytest.raises(NotFound):
        lib.attach_comment("garbage", "x")

    assert lib.store.count("comments") == 0


def test_listing_and_single_fetch_agree(lib):
    a = lib.create_book("A")
    b = lib.create_book("B")
    for text in ("one", "two", "three"):
        lib.attach_comment(a.id, text)
    lib.attach_comment(b.id, "solo")

    listed = {view.id: view for view in lib.list_books()}

    for book_id in (a.id, b.id):
        single = lib.get_book(book_id)
        assert listed[book_id].comments == single.comments
        assert listed[book_id].commentcount == single.commentcount
        assert listed[book_id].revision == single.revision


def test_delete_book_then_repeat(lib):
    book = lib.create_book("Doomed")
    lib.attach_comment(book.id, "bye")

    assert lib.delete_book(book.id) is DeleteOutcome.DELETED
    with pytest.raises(NotFound):
        lib.get_book(book.id)
    assert lib.delete_book(book.id) is DeleteOutcome.NOT_FOUND
    assert lib.store.count("comments") == 0


def test_delete_book_keeps_other_books_comments(lib):
    keep = lib.create_book("Keep")
    drop = lib.create_book("Drop")
    lib.attach_comment(keep.id, "stays")
    lib.attach_comment(drop.id, "goes")

    lib.delete_book(drop.id)

    assert lib.get_book(keep.id).comments == ["stays"]
    assert lib.store.count("comments") == 1


def test_delete_all_books(lib):
    for title in ("A", "B"):
        book = lib.create_book(title)
        lib.attach_comment(book.id, "c")

    assert lib.delete_all_books() is DeleteOutcome.DELETED
    assert lib.list_books() == []
    assert lib.store.count("comments") == 0
    # Idempotent on an empty catalog
    assert lib.delete_all_books() is DeleteOutcome.DELETED


def test_scenario_create_comment_delete(lib):
    book_id = lib.create_book("Testowy").id

    lib.attach_comment(book_id, "nice")
    assert lib.get_book(book_id).comments[-1] == "nice"

    lib.delete_book(book_id)
    with pytest.raises(NotFound):
        lib.get_book(book_id)


def test_library_opens_store_from_db_file(db_file):
    lib = Library(db_file=db_file)
    try:
        book = lib.create_book("Sapiens")
    finally:
        lib.close()

    lib2 = Library(db_file=db_file)
    try:
        assert lib2.get_book(book.id).title == "Sapiens"
    finally:
        lib2.close()
