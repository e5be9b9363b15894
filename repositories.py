"""Per-entity data access on top of a ``GraphTransaction``.

A repository is bound to one open transaction; create a fresh one inside each
``store.transaction()`` block.
"""
from typing import List, Optional, Tuple

from book import Author, Book
from database import AUTHOR, BOOK, HAS_ROLE, ROLE, USER, WRITTEN_BY, GraphTransaction, WriteFailed
from user import Role, User


class AuthorRepository:
    def __init__(self, tx: GraphTransaction) -> None:
        self.tx = tx

    def find_by_id(self, author_id: str) -> Optional[Author]:
        node = self.tx.get_node(AUTHOR, author_id)
        return Author.from_dict(node.to_dict()) if node else None

    def find_by_name(self, name: str) -> Optional[Author]:
        nodes = self.tx.find_nodes(AUTHOR, name=name)
        return Author.from_dict(nodes[0].to_dict()) if nodes else None

    def find_all(self) -> List[Author]:
        return [Author.from_dict(node.to_dict()) for node in self.tx.find_nodes(AUTHOR)]

    def save(self, author: Author) -> Tuple[Author, bool]:
        """Persist ``author`` unless one with the same name exists.

        Returns the stored author and whether this call created it.
        """
        node, created = self.tx.merge_node(AUTHOR, "name", {"name": author.name})
        return Author.from_dict(node.to_dict()), created


class BookRepository:
    def __init__(self, tx: GraphTransaction) -> None:
        self.tx = tx

    def save(self, book: Book) -> Book:
        """Create the book node and its WRITTEN_BY link in the current transaction."""
        if book.author is None or book.author.id is None:
            raise WriteFailed(f"Book {book.title!r} has no persisted author")
        node = self.tx.create_node(BOOK, {"title": book.title})
        self.tx.relate(node.id, WRITTEN_BY, book.author.id)
        return Book(title=node.properties["title"], author=book.author, id=node.id)

    def find_by_id(self, book_id: str) -> Optional[Book]:
        node = self.tx.get_node(BOOK, book_id)
        if node is None:
            return None
        authors = self.tx.related(node.id, WRITTEN_BY, AUTHOR)
        author = Author.from_dict(authors[0].to_dict()) if authors else None
        return Book(title=node.properties["title"], author=author, id=node.id)

    def find_by_title(self, title: str) -> List[Book]:
        return [self.find_by_id(node.id) for node in self.tx.find_nodes(BOOK, title=title)]

    def find_all(self) -> List[Book]:
        books = []
        for node, author_node in self.tx.nodes_with_related(BOOK, WRITTEN_BY, AUTHOR):
            author = Author.from_dict(author_node.to_dict()) if author_node else None
            books.append(Book(title=node.properties["title"], author=author, id=node.id))
        return books


class RoleRepository:
    def __init__(self, tx: GraphTransaction) -> None:
        self.tx = tx

    def find_by_name(self, name: str) -> Optional[Role]:
        nodes = self.tx.find_nodes(ROLE, name=name)
        return Role.from_dict(nodes[0].to_dict()) if nodes else None

    def find_all(self) -> List[Role]:
        return [Role.from_dict(node.to_dict()) for node in self.tx.find_nodes(ROLE)]

    def save(self, role: Role) -> Role:
        node, _ = self.tx.merge_node(ROLE, "name", {"name": role.name})
        return Role.from_dict(node.to_dict())


class UserRepository:
    def __init__(self, tx: GraphTransaction) -> None:
        self.tx = tx

    def _load(self, node) -> User:
        roles = [Role.from_dict(r.to_dict()) for r in self.tx.related(node.id, HAS_ROLE, ROLE)]
        data = node.to_dict()
        data["roles"] = roles
        return User.from_dict(data)

    def find_by_id(self, user_id: str) -> Optional[User]:
        node = self.tx.get_node(USER, user_id)
        return self._load(node) if node else None

    def find_by_username(self, username: str) -> Optional[User]:
        # Usernames are not unique at the store level; the first match wins.
        nodes = self.tx.find_nodes(USER, username=username)
        return self._load(nodes[0]) if nodes else None

    def find_all(self) -> List[User]:
        return [self._load(node) for node in self.tx.find_nodes(USER)]

    def save(self, user: User) -> User:
        """Create the user node and link it to its (already persisted) roles."""
        node = self.tx.create_node(USER, {"username": user.username, "password_hash": user.password_hash})
        for role in user.roles:
            if role.id is None:
                raise WriteFailed(f"Role {role.name!r} must be saved before user {user.username!r}")
            self.tx.relate(node.id, HAS_ROLE, role.id)
        return User(username=user.username, password_hash=user.password_hash, roles=list(user.roles), id=node.id)

    def delete_all(self) -> int:
        return self.tx.delete_nodes(USER)
