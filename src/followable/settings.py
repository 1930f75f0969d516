from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FollowableSettings(BaseSettings):
    """Configuration for followable.

    Environment variables are prefixed with FOLLOWABLE_.
    """

    model_config = SettingsConfigDict(env_prefix="FOLLOWABLE_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")
    node_types: list[str] = Field(
        default_factory=lambda: ["User", "Group"],
        description="Node types registered by the CLI and HTTP composition root",
    )
    strict_authorization: bool = Field(
        default=False, description="Reject unregistered type names in set_authorization"
    )
    lock_stripes: int = Field(default=64, ge=1, description="In-process pair lock stripes")

    # --- Storage ---
    backend: str = Field(default="sqlite", description="memory|sqlite|arango")
    sqlite_path: str = Field(default="~/.followable/followable.db")

    # --- ArangoDB ---
    arango_url: str = Field(default="http://localhost:8529")
    arango_username: str = "root"
    arango_password: str = ""
    arango_database: str = "followable"
    arango_edge_collection: str = "follow_edges"

    # --- HTTP ---
    api_key: str | None = Field(default=None, description="If set, require X-API-Key")


settings = FollowableSettings()
