import logging
from typing import List, Optional

from book import Author, Book
from database import GraphStore, StoreError, StoreUnavailable, WriteFailed, create_store
from repositories import AuthorRepository, BookRepository
from utils.validators import TextValidator

logger = logging.getLogger(__name__)


class AuthorResolver:
    """Find an author by exact name, creating it when absent."""

    def __init__(self, authors: AuthorRepository) -> None:
        self.authors = authors

    def resolve(self, name: str) -> Author:
        existing = self.authors.find_by_name(name)
        if existing is not None:
            logger.debug(f"Resolved existing author {name!r} ({existing.id})")
            return existing

        author, created = self.authors.save(Author(name))
        if created:
            logger.info(f"Created author {name!r} ({author.id})")
        else:
            # Another writer created it between our lookup and our create.
            logger.info(f"Author {name!r} was created concurrently; using {author.id}")
        return author


class Library:
    """Catalog operations: adding books under resolved authors and listing them."""

    def __init__(self, store: Optional[GraphStore] = None) -> None:
        self.store = store or create_store()

    # ------------------------- Core operations ------------------------- #
    def add_book(self, title: str, author_name: str) -> Book:
        """Resolve ``author_name`` and create a book linked to it, in one transaction.

        Any failure rolls back the whole transaction, including an author this
        call just created.
        """
        if not TextValidator.validate_title(title):
            raise ValueError("Title cannot be empty.")
        if not TextValidator.validate_author(author_name):
            raise ValueError("Author name cannot be empty.")

        with self.store.transaction() as tx:
            author = AuthorResolver(AuthorRepository(tx)).resolve(author_name)
            try:
                book = BookRepository(tx).save(Book(title=title, author=author))
            except StoreUnavailable:
                raise
            except StoreError as exc:
                raise WriteFailed(f"Could not save book {title!r}: {exc}") from exc

        logger.info(f"Added book {book.title!r} ({book.id}) by {author.name!r}")
        return book

    def list_books(self) -> List[Book]:
        """Every book in the store with its author; store-native order."""
        with self.store.transaction(write=False) as tx:
            return BookRepository(tx).find_all()

    def close(self) -> None:
        self.store.close()
