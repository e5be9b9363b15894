"""Development bootstrap: default accounts and a couple of books.

Wipes every User node before recreating the defaults, so it must never run
against a store holding real accounts. It only runs when
LIBRARY_ENABLE_DEV_SEED is set and ENVIRONMENT is not production.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from config import Settings, settings as default_settings
from library import Library
from repositories import BookRepository, RoleRepository, UserRepository
from security import hash_password
from user import ROLE_ADMIN, ROLE_USER, Role, User

logger = logging.getLogger(__name__)

SEED_BOOKS = (
    ("The Lord of the Rings", "J.R.R. Tolkien"),
    ("Neuromancer", "William Gibson"),
)


class SeedDisabledError(RuntimeError):
    pass


@dataclass
class SeedReport:
    users_removed: int = 0
    users_created: List[str] = field(default_factory=list)
    books_created: List[str] = field(default_factory=list)


def seed_dev_data(library: Library, config: Optional[Settings] = None) -> SeedReport:
    config = config or default_settings
    if not config.enable_dev_seed:
        raise SeedDisabledError("Dev seeding is disabled; set LIBRARY_ENABLE_DEV_SEED=true to enable it.")
    if config.is_production:
        raise SeedDisabledError("Refusing to seed a production environment.")

    report = SeedReport()
    with library.store.transaction() as tx:
        users = UserRepository(tx)
        report.users_removed = users.delete_all()

        roles = RoleRepository(tx)
        admin_role = roles.save(Role(ROLE_ADMIN))
        user_role = roles.save(Role(ROLE_USER))

        accounts = (
            ("admin", config.seed_admin_password, [admin_role, user_role]),
            ("user", config.seed_user_password, [user_role]),
        )
        for username, password, granted in accounts:
            password_hash = hash_password(password, rounds=config.password_hash_rounds)
            users.save(User(username, password_hash, roles=granted))
            report.users_created.append(username)
            logger.info(f"Created seed user {username!r}")

    for title, author_name in SEED_BOOKS:
        with library.store.transaction(write=False) as tx:
            exists = bool(BookRepository(tx).find_by_title(title))
        if not exists:
            library.add_book(title, author_name)
            report.books_created.append(title)

    logger.info(
        f"Seed complete: removed {report.users_removed} users, "
        f"created users={report.users_created}, books={report.books_created}"
    )
    return report
