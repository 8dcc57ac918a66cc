"""Builds the client-facing book views.

Two strategies produce the same view:

- ``list_all`` answers a listing with one join from every book's
  ``commentRefs`` into the comments collection.
- ``get_one`` resolves a single book and then the comment ids it references.

Both treat ``commentRefs`` as the source of truth for which comments belong to
a book and in which order. References whose comment no longer exists are left
out of ``comments`` and of ``commentcount`` and logged, so the two strategies
agree even when the collections have drifted apart.
"""
import logging
from typing import List

from book import Book, BookView
from database import DocumentStore
from repositories import BOOKS, COMMENTS, BookRepository

logger = logging.getLogger(__name__)


class ViewBuilder:

    def __init__(self, store: DocumentStore, books: BookRepository) -> None:
        self.store = store
        self.books = books

    def list_all(self) -> List[BookView]:
        joined = self.store.lookup(BOOKS, COMMENTS, local_field="commentRefs", foreign_field="_id", as_field="comments")
        views = []
        for doc in joined:
            comments = doc["comments"]
            refs = doc.get("commentRefs", [])
            if len(comments) != len(refs):
                self._log_dangling(doc["_id"], refs, [c["_id"] for c in comments])
            views.append(BookView(
                id=doc["_id"],
                title=doc["title"],
                comments=[c["text"] for c in comments],
                revision=doc["__v"],
            ))
        return views

    def get_one(self, book_id: str) -> BookView:
        """Raises NotFound when the book does not exist."""
        book = self.books.find_by_id(book_id)
        return self.from_book(book)

    def from_book(self, book: Book) -> BookView:
        resolved = self.store.find_by_ids(COMMENTS, book.comment_refs)
        texts = [resolved[ref]["text"] for ref in book.comment_refs if ref in resolved]
        if len(texts) != len(book.comment_refs):
            self._log_dangling(book.id, book.comment_refs, list(resolved))
        return BookView(id=book.id, title=book.title, comments=texts, revision=book.revision)

    @staticmethod
    def _log_dangling(book_id: str, refs: List[str], resolved_ids: List[str]) -> None:
        found = set(resolved_ids)
        missing = [ref for ref in refs if ref not in found]
        logger.warning(f"Book {book_id} references missing comments, skipped: {missing}")
