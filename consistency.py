"""
Consistency Manager: writes that span the books and comments collections.

Attaching a comment and deleting a book each touch both collections. Both
writes run inside a single store transaction, so a failure between them (the
book vanishing, a storage error) rolls back the first write instead of leaving
an orphaned comment or a book with dangling references behind.

Anything written outside these paths (older data, manual edits) can still
drift. ``audit`` reports such drift and ``repair`` is the compensating step
that removes orphans, strips dangling references and drops repeated ones.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

from book import BookView
from database import DocumentStore
from errors import NotFound, ValidationError
from repositories import BOOKS, COMMENTS, BookRepository, CommentRepository
from validators import TextValidator
from views import ViewBuilder

logger = logging.getLogger(__name__)


class DeleteOutcome(Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"


class ConsistencyReport:
    """Drift found between ``Book.commentRefs`` and ``Comment.bookId``."""

    def __init__(self, orphans: Optional[List[str]] = None,
                 dangling: Optional[Dict[str, List[str]]] = None,
                 misplaced: Optional[Dict[str, List[str]]] = None,
                 unlisted: Optional[Dict[str, List[str]]] = None,
                 duplicated: Optional[Dict[str, List[str]]] = None) -> None:
        # Comment ids whose bookId does not resolve
        self.orphans = list(orphans or [])
        # book id -> referenced comment ids that do not resolve
        self.dangling = dict(dangling or {})
        # book id -> referenced comment ids owned by another book
        self.misplaced = dict(misplaced or {})
        # book id -> ids of its own comments missing from its references
        self.unlisted = dict(unlisted or {})
        # book id -> comment ids listed more than once
        self.duplicated = dict(duplicated or {})

    @property
    def is_consistent(self) -> bool:
        return not (self.orphans or self.dangling or self.misplaced
                    or self.unlisted or self.duplicated)

    def to_dict(self) -> dict:
        return {
            "consistent": self.is_consistent,
            "orphans": self.orphans,
            "dangling": self.dangling,
            "misplaced": self.misplaced,
            "unlisted": self.unlisted,
            "duplicated": self.duplicated,
        }


class ConsistencyManager:

    def __init__(self, store: DocumentStore, books: BookRepository,
                 comments: CommentRepository, views: ViewBuilder) -> None:
        self.store = store
        self.books = books
        self.comments = comments
        self.views = views

    def attach_comment(self, book_id: str, text: str) -> BookView:
        """Creates a comment and appends it to the book's references.

        Raises ValidationError for empty text and NotFound when the book does
        not exist; in both cases nothing is persisted.
        """
        if not TextValidator.is_non_empty(text):
            raise ValidationError("comment")
        try:
            with self.store.transaction():
                comment = self.comments.create(text, book_id)
                book = self.books.append_comment_ref(book_id, comment.id)
                view = self.views.from_book(book)
        except ValidationError as e:
            # A malformed book id can never resolve
            if e.field == "bookId":
                raise NotFound(BOOKS, book_id) from e
            raise
        except NotFound:
            logger.warning(f"Comment rejected, book {book_id} does not exist")
            raise
        logger.info(f"Comment {comment.id} attached to book {book.id}")
        return view

    def delete_book(self, book_id: str) -> DeleteOutcome:
        with self.store.transaction():
            removed_comments = self.comments.delete_by_book_id(book_id)
            deleted = self.books.delete_by_id(book_id)
        if not deleted:
            return DeleteOutcome.NOT_FOUND
        logger.info(f"Book {book_id} deleted with {removed_comments} comment(s)")
        return DeleteOutcome.DELETED

    def delete_all_books(self) -> DeleteOutcome:
        with self.store.transaction():
            removed_comments = self.comments.delete_all()
            removed_books = self.books.delete_all()
        logger.info(f"Catalog emptied: {removed_books} book(s), {removed_comments} comment(s)")
        return DeleteOutcome.DELETED

    # ------------------------- Audit / repair ------------------------- #
    def audit(self) -> ConsistencyReport:
        with self.store.transaction():
            owners = self.store.lookup(COMMENTS, BOOKS, local_field="bookId", foreign_field="_id", as_field="book")
            referenced = self.store.lookup(BOOKS, COMMENTS, local_field="commentRefs", foreign_field="_id", as_field="comments")

        orphans: List[str] = []
        unlisted: Dict[str, List[str]] = {}
        for doc in owners:
            if not doc["book"]:
                orphans.append(doc["_id"])
                continue
            owner = doc["book"][0]
            if doc["_id"] not in owner.get("commentRefs", []):
                unlisted.setdefault(owner["_id"], []).append(doc["_id"])

        dangling: Dict[str, List[str]] = {}
        misplaced: Dict[str, List[str]] = {}
        duplicated: Dict[str, List[str]] = {}
        for doc in referenced:
            refs = doc.get("commentRefs", [])
            found = {c["_id"]: c for c in doc["comments"]}
            missing = [ref for ref in dict.fromkeys(refs) if ref not in found]
            foreign = [cid for cid, c in found.items() if c["bookId"] != doc["_id"]]
            # Stale refs are stripped whole, so only owned ones count as repeats
            repeated = [cid for cid, c in found.items() if c["bookId"] == doc["_id"] and refs.count(cid) > 1]
            if missing:
                dangling[doc["_id"]] = missing
            if foreign:
                misplaced[doc["_id"]] = foreign
            if repeated:
                duplicated[doc["_id"]] = repeated

        report = ConsistencyReport(orphans=orphans, dangling=dangling, misplaced=misplaced,
                                   unlisted=unlisted, duplicated=duplicated)
        if not report.is_consistent:
            logger.warning(
                f"Consistency audit found {len(orphans)} orphan(s), "
                f"{sum(len(v) for v in dangling.values())} dangling, "
                f"{sum(len(v) for v in misplaced.values())} misplaced, "
                f"{sum(len(v) for v in unlisted.values())} unlisted and "
                f"{sum(len(v) for v in duplicated.values())} duplicated comment reference(s)"
            )
        return report

    def repair(self) -> ConsistencyReport:
        """Compensating pass over the whole catalog.

        Deletes orphaned comments, strips references that do not resolve or
        point at another book's comment, keeps one copy of repeated references,
        and appends a book's own unlisted comments to its references. Returns
        the report of what was fixed; running it again on a repaired catalog
        finds nothing.
        """
        with self.store.transaction():
            report = self.audit()
            if report.orphans:
                self.comments.delete_by_ids(report.orphans)
            stale: Dict[str, List[str]] = {}
            for source in (report.dangling, report.misplaced):
                for book_id, ids in source.items():
                    stale.setdefault(book_id, []).extend(ids)
            for book_id, ids in stale.items():
                self.books.remove_comment_refs(book_id, ids)
            for book_id in report.duplicated:
                self.books.dedupe_comment_refs(book_id)
            for book_id, ids in report.unlisted.items():
                for comment_id in ids:
                    self.books.append_comment_ref(book_id, comment_id)
        if not report.is_consistent:
            logger.info(f"Repair applied: {report.to_dict()}")
        return report
