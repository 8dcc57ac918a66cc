from __future__ import annotations


class Book:
    """Represents a single book in the catalog."""

    def __init__(self, id: str, title: str, comment_refs: list | None = None, revision: int = 0) -> None:
        self.id = id
        self.title = title.strip()
        self.comment_refs = list(comment_refs or [])
        self.revision = revision

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} ({self.id})"

    def to_dict(self) -> dict:
        return {"_id": self.id, "title": self.title, "commentRefs": self.comment_refs, "__v": self.revision}

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data["_id"],
            title=data["title"],
            comment_refs=data.get("commentRefs"),
            revision=data.get("__v", 0),
        )


class Comment:
    """A free-text comment owned by exactly one book."""

    def __init__(self, id: str, text: str, book_id: str) -> None:
        self.id = id
        self.text = text
        self.book_id = book_id

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return self.text

    def to_dict(self) -> dict:
        return {"_id": self.id, "text": self.text, "bookId": self.book_id}

    @staticmethod
    def from_dict(data: dict) -> "Comment":
        return Comment(id=data["_id"], text=data["text"], book_id=data["bookId"])


class BookView:
    """Client-facing shape of a book: its title, resolved comment texts and their count."""

    def __init__(self, id: str, title: str, comments: list[str], revision: int = 0) -> None:
        self.id = id
        self.title = title
        self.comments = list(comments)
        self.revision = revision

    @property
    def commentcount(self) -> int:
        return len(self.comments)

    def to_dict(self) -> dict:
        return {
            "_id": self.id,
            "title": self.title,
            "comments": self.comments,
            "commentcount": self.commentcount,
            "__v": self.revision,
        }
