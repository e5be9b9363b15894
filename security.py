"""
Access control for the catalog API.

Provides bcrypt password hashing, HTTP Basic authentication against stored
users and the static role policy for the book endpoints.
"""
import logging
from typing import Dict, FrozenSet, Optional, Tuple

import bcrypt
from fastapi import Depends, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from config import settings
from database import GraphStore
from repositories import UserRepository
from user import ROLE_PREFIX, User

logger = logging.getLogger(__name__)


# ==================== PASSWORD HASHING ====================


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor, defaults to PASSWORD_HASH_ROUNDS

    Returns:
        Hashed password string
    """
    salt = bcrypt.gensalt(rounds=rounds or settings.password_hash_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.error(f"Password verification failed: {e}")
        return False


# ==================== ACCESS POLICY ====================


class AuthenticationRequired(Exception):
    """No credentials, unknown user or wrong password."""


class AuthorizationDenied(Exception):
    """Authenticated, but none of the user's roles is permitted for the request."""


# (method, path) -> short role names allowed. Routes not listed only need a
# successful login.
ROLE_POLICY: Dict[Tuple[str, str], FrozenSet[str]] = {
    ("POST", "/api/books"): frozenset({"ADMIN"}),
    ("GET", "/api/books"): frozenset({"ADMIN", "USER"}),
}


class AccessGate:
    def __init__(self, store: GraphStore, policy: Optional[Dict[Tuple[str, str], FrozenSet[str]]] = None) -> None:
        self.store = store
        self.policy = ROLE_POLICY if policy is None else policy

    _dummy_hash: Optional[str] = None

    @classmethod
    def _unknown_user_hash(cls) -> str:
        # Unknown usernames still pay for one bcrypt check.
        if cls._dummy_hash is None:
            cls._dummy_hash = hash_password("not-a-real-password")
        return cls._dummy_hash

    def authenticate(self, username: str, password: str) -> User:
        with self.store.transaction(write=False) as tx:
            user = UserRepository(tx).find_by_username(username)
        stored_hash = user.password_hash if user is not None else self._unknown_user_hash()
        if not verify_password(password, stored_hash) or user is None:
            logger.warning(f"Authentication failed for {username!r}")
            raise AuthenticationRequired("Invalid username or password")
        return user

    def required_roles(self, method: str, path: str) -> Optional[FrozenSet[str]]:
        normalized = path.rstrip("/") or "/"
        return self.policy.get((method.upper(), normalized))

    def authorize(self, user: User, method: str, path: str) -> None:
        allowed = self.required_roles(method, path)
        if allowed is None:
            return
        if not user.has_any_role(*(ROLE_PREFIX + name for name in allowed)):
            logger.warning(f"{user.username!r} denied {method} {path}; roles={sorted(user.role_names)}")
            raise AuthorizationDenied(f"{method} {path} requires one of: {', '.join(sorted(allowed))}")

    def check(self, credentials: Optional[HTTPBasicCredentials], method: str, path: str) -> User:
        if credentials is None:
            raise AuthenticationRequired("Authentication required")
        user = self.authenticate(credentials.username, credentials.password)
        self.authorize(user, method, path)
        return user


basic_auth = HTTPBasic(auto_error=False, realm=settings.auth_realm)


def require_access(
    request: Request, credentials: Optional[HTTPBasicCredentials] = Depends(basic_auth)
) -> User:
    """FastAPI dependency: authenticate the caller and apply the role policy."""
    gate: AccessGate = request.app.state.gate
    user = gate.check(credentials, request.method, request.url.path)
    request.state.user = user
    return user
