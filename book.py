from __future__ import annotations


class Author:
    """A single author node in the catalog graph."""

    def __init__(self, name: str, id: str | None = None) -> None:
        # Names are matched exactly; no trimming or case folding here.
        self.name = name
        self.id = id

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return self.name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Author):
            return NotImplemented
        return self.id == other.id and self.name == other.name

    def __hash__(self) -> int:
        return hash((self.id, self.name))

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    @staticmethod
    def from_dict(data: dict) -> "Author":
        return Author(name=data["name"], id=data.get("id"))


class Book:
    """A book node together with the author it is WRITTEN_BY."""

    def __init__(self, title: str, author: Author | None = None, id: str | None = None) -> None:
        self.title = title
        self.author = author
        self.id = id

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        author = self.author.name if self.author else "?"
        return f"{self.title} by {author}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author.to_dict() if self.author else None,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        author = data.get("author")
        if isinstance(author, dict):
            author = Author.from_dict(author)
        return Book(title=data["title"], author=author, id=data.get("id"))
