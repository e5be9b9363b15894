import threading
from unittest.mock import MagicMock

import pytest

from book import Author
from database import StoreUnavailable, WriteFailed
from library import AuthorResolver, Library
from repositories import AuthorRepository, BookRepository


def _authors_named(store, name):
    with store.transaction(write=False) as tx:
        return [a for a in AuthorRepository(tx).find_all() if a.name == name]


def test_list_books_empty(lib):
    assert lib.list_books() == []


def test_add_book_new_author(lib, store):
    book = lib.add_book("Dune", "Frank Herbert")

    assert book.id is not None
    assert book.title == "Dune"
    assert book.author.name == "Frank Herbert"
    assert book.author.id is not None

    listed = lib.list_books()
    assert len(listed) == 1
    assert listed[0].title == "Dune"
    assert listed[0].author.name == "Frank Herbert"
    assert len(_authors_named(store, "Frank Herbert")) == 1


def test_add_book_existing_author_is_reused(lib, store):
    first = lib.add_book("Dune", "Frank Herbert")
    second = lib.add_book("Dune Messiah", "Frank Herbert")

    assert second.author.id == first.author.id
    assert len(_authors_named(store, "Frank Herbert")) == 1
    assert {b.title for b in lib.list_books()} == {"Dune", "Dune Messiah"}


def test_add_same_book_twice_creates_two_books_one_author(lib, store):
    a = lib.add_book("Neuromancer", "William Gibson")
    b = lib.add_book("Neuromancer", "William Gibson")

    assert a.id != b.id
    assert a.author.id == b.author.id
    assert len(lib.list_books()) == 2
    assert len(_authors_named(store, "William Gibson")) == 1


def test_author_lookup_is_exact(lib, store):
    lib.add_book("Dune", "Frank Herbert")
    lib.add_book("Children of Dune", "frank herbert")

    assert len(_authors_named(store, "Frank Herbert")) == 1
    assert len(_authors_named(store, "frank herbert")) == 1


@pytest.mark.parametrize("title,author", [("", "Someone"), ("   ", "Someone"), ("Title", ""), ("Title", "  ")])
def test_add_book_rejects_blank_fields(lib, title, author):
    with pytest.raises(ValueError):
        lib.add_book(title, author)
    assert lib.list_books() == []


def test_every_listed_book_has_an_author(lib):
    lib.add_book("The Lord of the Rings", "J.R.R. Tolkien")
    lib.add_book("The Hobbit", "J.R.R. Tolkien")
    lib.add_book("Neuromancer", "William Gibson")

    assert all(b.author is not None and b.author.id for b in lib.list_books())


def test_failed_book_write_rolls_back_new_author(lib, store, monkeypatch):
    def broken_relate(self, from_id, rel_type, to_id):
        raise WriteFailed("disk full")

    monkeypatch.setattr("database._InMemoryTransaction.relate", broken_relate)

    with pytest.raises(WriteFailed):
        lib.add_book("Dune", "Frank Herbert")

    assert _authors_named(store, "Frank Herbert") == []
    assert lib.list_books() == []


def test_store_unavailable_propagates(lib, store):
    store.close()
    with pytest.raises(StoreUnavailable):
        lib.add_book("Dune", "Frank Herbert")
    with pytest.raises(StoreUnavailable):
        lib.list_books()


def test_resolver_returns_existing_author_without_saving():
    authors = MagicMock(spec=AuthorRepository)
    existing = Author("Existing Author", id="7")
    authors.find_by_name.return_value = existing

    assert AuthorResolver(authors).resolve("Existing Author") is existing
    authors.find_by_name.assert_called_once_with("Existing Author")
    authors.save.assert_not_called()


def test_resolver_creates_missing_author():
    authors = MagicMock(spec=AuthorRepository)
    authors.find_by_name.return_value = None
    authors.save.return_value = (Author("New Author", id="1"), True)

    author = AuthorResolver(authors).resolve("New Author")

    assert author.id == "1"
    saved = authors.save.call_args[0][0]
    assert saved.name == "New Author"


def test_resolver_uses_winner_of_concurrent_create():
    authors = MagicMock(spec=AuthorRepository)
    authors.find_by_name.return_value = None
    authors.save.return_value = (Author("Racy", id="99"), False)

    assert AuthorResolver(authors).resolve("Racy").id == "99"


def test_book_repository_requires_persisted_author(store):
    from book import Book

    with pytest.raises(WriteFailed):
        with store.transaction() as tx:
            BookRepository(tx).save(Book("Orphan", author=Author("Nobody")))


def test_concurrent_adds_share_one_author(lib, store):
    errors = []

    def add(i):
        try:
            lib.add_book(f"Volume {i}", "Same Author")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=add, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    authors = _authors_named(store, "Same Author")
    assert len(authors) == 1
    books = lib.list_books()
    assert len(books) == 20
    assert {b.author.id for b in books} == {authors[0].id}
