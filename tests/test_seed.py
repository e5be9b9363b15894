import pytest

from config import Settings
from repositories import BookRepository, RoleRepository, UserRepository
from security import verify_password
from seed import SEED_BOOKS, SeedDisabledError, seed_dev_data
from user import User


def _dev_settings(**overrides):
    values = dict(
        enable_dev_seed=True,
        environment="development",
        seed_admin_password="adminpass",
        seed_user_password="userpass",
        password_hash_rounds=4,
    )
    values.update(overrides)
    return Settings(**values)


def test_seed_refused_without_flag(lib):
    with pytest.raises(SeedDisabledError):
        seed_dev_data(lib, _dev_settings(enable_dev_seed=False))
    assert lib.list_books() == []


def test_seed_refused_in_production(lib):
    with pytest.raises(SeedDisabledError):
        seed_dev_data(lib, _dev_settings(environment="production"))


def test_seed_creates_accounts_and_books(lib, store):
    report = seed_dev_data(lib, _dev_settings())

    assert report.users_created == ["admin", "user"]
    assert sorted(report.books_created) == sorted(title for title, _ in SEED_BOOKS)

    with store.transaction(write=False) as tx:
        users = UserRepository(tx)
        admin = users.find_by_username("admin")
        user = users.find_by_username("user")
    assert admin.role_names == {"ROLE_ADMIN", "ROLE_USER"}
    assert user.role_names == {"ROLE_USER"}
    assert verify_password("adminpass", admin.password_hash)
    assert verify_password("userpass", user.password_hash)

    books = {b.title: b.author.name for b in lib.list_books()}
    assert books == dict(SEED_BOOKS)


def test_seed_twice_is_stable(lib, store):
    seed_dev_data(lib, _dev_settings())
    report = seed_dev_data(lib, _dev_settings())

    assert report.users_removed == 2
    assert report.users_created == ["admin", "user"]
    assert report.books_created == []
    assert len(lib.list_books()) == len(SEED_BOOKS)
    with store.transaction(write=False) as tx:
        assert len(UserRepository(tx).find_all()) == 2
        assert len(RoleRepository(tx).find_all()) == 2


def test_seed_replaces_existing_users(lib, store):
    with store.transaction() as tx:
        UserRepository(tx).save(User("mallory", "hash"))

    seed_dev_data(lib, _dev_settings())

    with store.transaction(write=False) as tx:
        assert UserRepository(tx).find_by_username("mallory") is None


def test_seed_keeps_existing_books(lib, store):
    lib.add_book("Neuromancer", "William Gibson")
    report = seed_dev_data(lib, _dev_settings())

    assert report.books_created == ["The Lord of the Rings"]
    with store.transaction(write=False) as tx:
        assert len(BookRepository(tx).find_by_title("Neuromancer")) == 1
