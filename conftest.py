import pytest
from fastapi.testclient import TestClient

from api import create_app
from database import InMemoryGraphStore
from library import Library
from repositories import RoleRepository, UserRepository
from security import hash_password
from user import ROLE_ADMIN, ROLE_USER, Role, User

ADMIN_AUTH = ("admin", "adminpass")
USER_AUTH = ("user", "userpass")


@pytest.fixture
def store():
    # Fresh in-process graph for every test
    graph = InMemoryGraphStore()
    graph.ensure_constraints()
    yield graph
    graph.close()


@pytest.fixture
def lib(store):
    return Library(store)


@pytest.fixture
def accounts(store):
    """Admin (ADMIN + USER) and a plain user, hashed with a cheap bcrypt cost."""
    with store.transaction() as tx:
        roles = RoleRepository(tx)
        admin_role = roles.save(Role(ROLE_ADMIN))
        user_role = roles.save(Role(ROLE_USER))
        users = UserRepository(tx)
        admin = users.save(User("admin", hash_password("adminpass", rounds=4), roles=[admin_role, user_role]))
        user = users.save(User("user", hash_password("userpass", rounds=4), roles=[user_role]))
    return {"admin": admin, "user": user}


@pytest.fixture
def client(store, accounts):
    with TestClient(create_app(store)) as test_client:
        yield test_client
