import logging
from typing import List

from book import Book, Comment
from database import DocumentStore
from errors import NotFound, ValidationError
from validators import IdValidator, TextValidator

logger = logging.getLogger(__name__)

BOOKS = "books"
COMMENTS = "comments"


class BookRepository:
    """Persists books and the ordered list of comment ids each one holds."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def create(self, title: str) -> Book:
        if not TextValidator.is_non_empty(title):
            raise ValidationError("title")
        doc = self.store.insert(BOOKS, {"title": TextValidator.clean(title), "commentRefs": []})
        logger.info(f"Book created: id={doc['_id']}")
        return Book.from_dict(doc)

    def find_by_id(self, book_id: str) -> Book:
        """Returns the book or raises NotFound, also for ids of the wrong shape."""
        if not IdValidator.is_valid_id(book_id):
            raise NotFound(BOOKS, book_id)
        doc = self.store.find_by_id(BOOKS, IdValidator.normalize_id(book_id))
        if doc is None:
            raise NotFound(BOOKS, book_id)
        return Book.from_dict(doc)

    def find_all(self) -> List[Book]:
        return [Book.from_dict(doc) for doc in self.store.find_all(BOOKS)]

    def append_comment_ref(self, book_id: str, comment_id: str) -> Book:
        if not IdValidator.is_valid_id(book_id):
            raise NotFound(BOOKS, book_id)
        doc = self.store.push(BOOKS, IdValidator.normalize_id(book_id), "commentRefs", comment_id)
        if doc is None:
            raise NotFound(BOOKS, book_id)
        return Book.from_dict(doc)

    def remove_comment_refs(self, book_id: str, comment_ids: List[str]) -> Book:
        doc = self.store.pull_all(BOOKS, book_id, "commentRefs", comment_ids)
        if doc is None:
            raise NotFound(BOOKS, book_id)
        return Book.from_dict(doc)

    def dedupe_comment_refs(self, book_id: str) -> Book:
        """Keeps the first occurrence of each comment id, in stored order."""
        book = self.find_by_id(book_id)
        doc = self.store.set_field(BOOKS, book.id, "commentRefs", list(dict.fromkeys(book.comment_refs)))
        if doc is None:
            raise NotFound(BOOKS, book_id)
        return Book.from_dict(doc)

    def delete_by_id(self, book_id: str) -> bool:
        if not IdValidator.is_valid_id(book_id):
            return False
        return self.store.delete_one(BOOKS, IdValidator.normalize_id(book_id))

    def delete_all(self) -> int:
        return self.store.delete_many(BOOKS)


class CommentRepository:
    """Persists comments. The owning book is recorded but never checked here."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def create(self, text: str, book_id: str) -> Comment:
        if not TextValidator.is_non_empty(text):
            raise ValidationError("comment")
        if not IdValidator.is_valid_id(book_id):
            raise ValidationError("bookId", f"Malformed book id: {book_id!r}")
        doc = self.store.insert(COMMENTS, {"text": TextValidator.clean(text), "bookId": IdValidator.normalize_id(book_id)})
        return Comment.from_dict(doc)

    def find_by_id(self, comment_id: str) -> Comment:
        if not IdValidator.is_valid_id(comment_id):
            raise NotFound(COMMENTS, comment_id)
        doc = self.store.find_by_id(COMMENTS, IdValidator.normalize_id(comment_id))
        if doc is None:
            raise NotFound(COMMENTS, comment_id)
        return Comment.from_dict(doc)

    def find_by_book_id(self, book_id: str) -> List[Comment]:
        return [Comment.from_dict(doc) for doc in self.store.find_many(COMMENTS, "bookId", book_id)]

    def delete_by_book_id(self, book_id: str) -> int:
        return self.store.delete_many(COMMENTS, "bookId", IdValidator.normalize_id(book_id))

    def delete_by_ids(self, comment_ids: List[str]) -> int:
        return self.store.delete_by_ids(COMMENTS, comment_ids)

    def delete_all(self) -> int:
        return self.store.delete_many(COMMENTS)
