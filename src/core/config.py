"""Configuration management for taskquest."""

from enum import StrEnum
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DocumentStoreBackend(StrEnum):
    """Which remote document store backs user state."""

    SQLITE = "sqlite"
    POCKETBASE = "pocketbase"


class UncompletePolicy(StrEnum):
    """What happens to points when a completed task is toggled back to open."""

    KEEP_POINTS = "keep_points"  # Observed behavior: points stay earned
    REVOKE_POINTS = "revoke_points"  # Subtract the task's points, floored at zero


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document Store Configuration
    document_store_backend: DocumentStoreBackend = Field(
        default=DocumentStoreBackend.SQLITE, description="Backend used for the per-user state document"
    )
    sqlite_db_path: str = Field(default="./data/taskquest.db", description="SQLite database file path")
    store_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Timeout for a single document store call before it counts as failed"
    )

    # PocketBase Configuration
    pocketbase_url: str = Field(default="http://127.0.0.1:8090", description="PocketBase server URL")
    pocketbase_collection: str = Field(default="user_states", description="Collection holding user state documents")
    pocketbase_token: str | None = Field(default=None, description="Auth token sent with document requests")
    pocketbase_admin_email: str = Field(
        default="admin@test.local", description="PocketBase admin email for schema sync"
    )
    pocketbase_admin_password: str = Field(
        default="testpassword123", description="PocketBase admin password for schema sync"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Gameplay Configuration
    default_points: int = Field(default=500, ge=0, description="Point balance for a freshly created user")
    uncomplete_policy: UncompletePolicy = Field(
        default=UncompletePolicy.KEEP_POINTS,
        description="Whether un-completing a task takes its points back",
    )

    # Presentation Configuration
    notification_ttl_seconds: float = Field(
        default=3.0, gt=0, description="How long a transient notification stays visible"
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # Shop
    SELL_RATIO: float = 0.5  # Selling returns half of the purchase price

    # Defaults applied when a draft leaves them out
    DEFAULT_CATEGORY_ID: str = "general"
    DEFAULT_SHOP_CATEGORY: str = "general"

    # Top-level fields of a user state document
    STATE_FIELDS: tuple[str, ...] = ("points", "tasks", "categories", "shopItems", "storageItems")

    # Seed data for new user documents
    DEFAULT_CATEGORIES: tuple[dict[str, Any], ...] = (
        {"id": "general", "name": "General"},
        {"id": "work", "name": "Work"},
        {"id": "personal", "name": "Personal"},
    )
    DEFAULT_SHOP_ITEMS: tuple[dict[str, Any], ...] = (
        {
            "id": 1,
            "name": "1 Hour YouTube",
            "price": 100,
            "description": "1 hour of YouTube time",
            "category": "entertainment",
        },
        {
            "id": 2,
            "name": "2 Hour Movie",
            "price": 200,
            "description": "2 hours of movie time",
            "category": "entertainment",
        },
    )


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
