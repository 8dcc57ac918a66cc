import pytest

from errors import NotFound


def test_views_preserve_insertion_order(lib):
    book = lib.create_book("Ordered")
    for text in ("c", "a", "b"):
        lib.attach_comment(book.id, text)

    assert lib.get_book(book.id).comments == ["c", "a", "b"]
    assert lib.list_books()[0].comments == ["c", "a", "b"]


def test_both_paths_skip_a_comment_removed_out_of_band(lib, store):
    book = lib.create_book("Drifted")
    lib.attach_comment(book.id, "stays")
    lib.attach_comment(book.id, "vanishes")
    lib.attach_comment(book.id, "also stays")
    vanished = lib.books.find_by_id(book.id).comment_refs[1]
    store.delete_one("comments", vanished)

    single = lib.get_book(book.id)
    listed = lib.list_books()[0]

    assert single.comments == ["stays", "also stays"]
    assert single.commentcount == 2
    assert listed.comments == single.comments
    assert listed.commentcount == single.commentcount


def test_comment_not_referenced_by_its_book_is_not_shown(lib, store):
    book = lib.create_book("Refs win")
    lib.attach_comment(book.id, "listed")
    store.insert("comments", {"text": "unlisted", "bookId": book.id})

    assert lib.get_book(book.id).comments == ["listed"]
    assert lib.list_books()[0].comments == ["listed"]


def test_get_one_missing(lib):
    with pytest.raises(NotFound):
        lib.views.get_one("0123456789abcdef01234567")


def test_list_all_many_books(lib):
    ids = [lib.create_book(f"Book {i}").id for i in range(5)]
    lib.attach_comment(ids[2], "only here")

    counts = {view.id: view.commentcount for view in lib.list_books()}

    assert counts == {book_id: (1 if book_id == ids[2] else 0) for book_id in ids}
