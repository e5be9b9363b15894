import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Graph store settings
    graph_backend: str = os.getenv("GRAPH_BACKEND", "neo4j")  # neo4j | memory
    neo4j_uri: str = os.getenv("NEO4J_URI", "bolt://localhost:7687")
    neo4j_user: str = os.getenv("NEO4J_USER", "neo4j")
    neo4j_password: Optional[str] = os.getenv("NEO4J_PASSWORD")
    neo4j_database: Optional[str] = os.getenv("NEO4J_DATABASE")
    neo4j_connection_timeout: float = float(os.getenv("NEO4J_CONNECTION_TIMEOUT", "10"))

    # Security settings
    password_hash_rounds: int = int(os.getenv("PASSWORD_HASH_ROUNDS", "12"))
    auth_realm: str = os.getenv("AUTH_REALM", "library")

    # Dev seed settings (never enable against a production store)
    enable_dev_seed: bool = _flag("LIBRARY_ENABLE_DEV_SEED")
    seed_admin_password: str = os.getenv("SEED_ADMIN_PASSWORD", "adminpass")
    seed_user_password: str = os.getenv("SEED_USER_PASSWORD", "userpass")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Catalog")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
