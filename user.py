from __future__ import annotations

ROLE_PREFIX = "ROLE_"
ROLE_ADMIN = "ROLE_ADMIN"
ROLE_USER = "ROLE_USER"


class Role:
    """A named capability tag attached to users (e.g. ROLE_ADMIN)."""

    def __init__(self, name: str, id: str | None = None) -> None:
        self.name = name
        self.id = id

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Role({self.name!r})"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    @staticmethod
    def from_dict(data: dict) -> "Role":
        return Role(name=data["name"], id=data.get("id"))


class User:
    """An account that may call the API. The password is only ever stored hashed."""

    def __init__(self, username: str, password_hash: str, roles: list[Role] | None = None,
                 id: str | None = None) -> None:
        self.username = username
        self.password_hash = password_hash
        self.roles = roles or []
        self.id = id

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"User({self.username!r}, roles={sorted(self.role_names)})"

    @property
    def role_names(self) -> set[str]:
        return {role.name for role in self.roles}

    def has_any_role(self, *names: str) -> bool:
        """True when the user holds at least one of ``names``, compared exactly."""
        return bool(self.role_names.intersection(names))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "password_hash": self.password_hash,
            "roles": [role.to_dict() for role in self.roles],
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        roles = [Role.from_dict(r) if isinstance(r, dict) else r for r in data.get("roles") or []]
        return User(
            username=data["username"],
            password_hash=data["password_hash"],
            roles=roles,
            id=data.get("id"),
        )
