"""Edge store implementations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import EdgeCollection, EdgeStore
from .memory import InMemoryEdgeStore
from .sqlite import SQLiteDB, SQLiteEdgeStore, SQLiteNodeRepository

if TYPE_CHECKING:
    from ..settings import FollowableSettings

__all__ = [
    "EdgeCollection",
    "EdgeStore",
    "InMemoryEdgeStore",
    "SQLiteDB",
    "SQLiteEdgeStore",
    "SQLiteNodeRepository",
    "build_edge_store",
]


def build_edge_store(cfg: "FollowableSettings") -> EdgeStore:
    backend = (cfg.backend or "memory").lower()
    if backend == "memory":
        return InMemoryEdgeStore()
    if backend == "sqlite":
        return SQLiteEdgeStore(cfg.sqlite_path)
    if backend == "arango":
        from .arango import ArangoEdgeStore

        return ArangoEdgeStore(
            url=cfg.arango_url,
            username=cfg.arango_username,
            password=cfg.arango_password,
            database=cfg.arango_database,
            edge_collection=cfg.arango_edge_collection,
        )
    raise ValueError(f"Unsupported backend: {cfg.backend}")
