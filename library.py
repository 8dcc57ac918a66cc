from typing import List, Optional

from book import Book, BookView
from consistency import ConsistencyManager, ConsistencyReport, DeleteOutcome
from database import DocumentStore
from repositories import BOOKS, BookRepository, CommentRepository
from views import ViewBuilder


class Library:
    """Entry point to the catalog: books, their comments and the views built from both.

    The store is injected and its lifecycle belongs to the caller. ``Library``
    only opens it if it was handed a closed one, and ``close()`` closes it.
    """

    def __init__(self, store: Optional[DocumentStore] = None, db_file: Optional[str] = None) -> None:
        self.store = store or DocumentStore(db_file=db_file)
        if not self.store.is_open:
            self.store.open()

        self.books = BookRepository(self.store)
        self.comments = CommentRepository(self.store)
        self.views = ViewBuilder(self.store, self.books)
        self.consistency = ConsistencyManager(self.store, self.books, self.comments, self.views)

    # ------------------------- Core operations ------------------------- #
    def list_books(self) -> List[BookView]:
        """Every book with its comments (fresh on each call)."""
        return self.views.list_all()

    def get_book(self, book_id: str) -> BookView:
        return self.views.get_one(book_id)

    def create_book(self, title: str) -> Book:
        return self.books.create(title)

    def attach_comment(self, book_id: str, text: str) -> BookView:
        return self.consistency.attach_comment(book_id, text)

    def delete_book(self, book_id: str) -> DeleteOutcome:
        return self.consistency.delete_book(book_id)

    def delete_all_books(self) -> DeleteOutcome:
        return self.consistency.delete_all_books()

    # ------------------------- Maintenance ------------------------- #
    def check_consistency(self) -> ConsistencyReport:
        return self.consistency.audit()

    def repair(self) -> ConsistencyReport:
        return self.consistency.repair()

    def count_books(self) -> int:
        return self.store.count(BOOKS)

    def close(self) -> None:
        self.store.close()
