from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

from ..errors import DuplicateEdgeError, StoreError
from ..models import Collection, Edge, FollowableNode, NodeRef, canonical_type
from .base import EdgeCollection, EdgeStore

logger = logging.getLogger(__name__)

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS follow_edges (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  edge_id TEXT NOT NULL UNIQUE,
  owner_type TEXT NOT NULL,
  owner_id TEXT NOT NULL,
  collection TEXT NOT NULL,
  peer_type TEXT NOT NULL,
  peer_id TEXT NOT NULL,
  created_at REAL NOT NULL,
  UNIQUE(owner_type, owner_id, collection, peer_type, peer_id)
);

CREATE TABLE IF NOT EXISTS nodes (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  node_type TEXT NOT NULL,
  node_id TEXT NOT NULL,
  doc_json TEXT NOT NULL,
  updated_at REAL NOT NULL,
  UNIQUE(node_type, node_id)
);

CREATE INDEX IF NOT EXISTS idx_edges_owner_peer_type
  ON follow_edges(owner_type, owner_id, collection, peer_type);
"""


MEMORY_PATH = ":memory:"


@dataclass
class SQLiteDB:
    """Connection factory for one SQLite database.

    ``":memory:"`` is mapped to a named shared-cache in-memory database that an
    anchor connection keeps alive until ``close()``, so every session sees the
    same schema and rows.
    """

    path: str
    _uri: Optional[str] = field(default=None, init=False, repr=False)
    _anchor: Optional[sqlite3.Connection] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if self.path == MEMORY_PATH:
            self._uri = f"file:followable-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._anchor = sqlite3.connect(self._uri, uri=True, check_same_thread=False)

    def connect(self) -> sqlite3.Connection:
        if self._uri is not None:
            return sqlite3.connect(self._uri, uri=True)
        return sqlite3.connect(self.path)

    def close(self) -> None:
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None

    def init(self) -> None:
        if self.path != MEMORY_PATH:
            Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        con = self.connect()
        try:
            con.executescript(SCHEMA)
            con.commit()
        finally:
            con.close()

    @contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        con = self.connect()
        try:
            yield con
            con.commit()
        except sqlite3.IntegrityError:
            con.rollback()
            raise
        except sqlite3.Error as e:
            con.rollback()
            logger.error(f"SQLite operation on {self.path} failed: {e}")
            raise StoreError(str(e)) from e
        finally:
            con.close()


def _row_to_edge(row: tuple) -> Edge:
    edge_id, owner_type, owner_id, collection, peer_type, peer_id, created_at = row
    return Edge(
        id=edge_id,
        owner=NodeRef(owner_type, owner_id),
        collection=Collection(collection),
        peer_type=peer_type,
        peer_id=peer_id,
        created_at=datetime.fromtimestamp(created_at, UTC),
    )


class SQLiteEdgeCollection(EdgeCollection):
    def __init__(self, db: SQLiteDB, owner: NodeRef, collection: Collection):
        super().__init__(owner, collection)
        self.db = db

    def _where(self, peer_type: Optional[str], peer_id: Optional[str]) -> tuple[str, list]:
        peer_type, peer_id = self._normalize(peer_type, peer_id)
        clauses = ["owner_type=?", "owner_id=?", "collection=?"]
        params: list = [self.owner.type, self.owner.id, self.collection.value]
        if peer_type is not None:
            clauses.append("peer_type=?")
            params.append(peer_type)
        if peer_id is not None:
            clauses.append("peer_id=?")
            params.append(peer_id)
        return " AND ".join(clauses), params

    def create(self, peer_type: str, peer_id: str) -> Edge:
        edge = Edge(
            owner=self.owner,
            collection=self.collection,
            peer_type=canonical_type(peer_type),
            peer_id=str(peer_id),
        )
        try:
            with self.db.session() as con:
                con.execute(
                    """
                    INSERT INTO follow_edges(
                      edge_id, owner_type, owner_id, collection, peer_type, peer_id, created_at
                    ) VALUES (?,?,?,?,?,?,?)
                    """,
                    (
                        edge.id,
                        self.owner.type,
                        self.owner.id,
                        self.collection.value,
                        edge.peer_type,
                        edge.peer_id,
                        edge.created_at.timestamp(),
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateEdgeError(
                f"{self.owner} already has {self.collection.value} edge to {edge.peer}"
            ) from e
        return edge

    def delete(self, edge: Edge) -> None:
        with self.db.session() as con:
            con.execute("DELETE FROM follow_edges WHERE edge_id=?", (edge.id,))

    def count_where(
        self,
        peer_type: Optional[str] = None,
        peer_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> int:
        where, params = self._where(peer_type, peer_id)
        if limit is None:
            q = f"SELECT COUNT(*) FROM follow_edges WHERE {where}"
        else:
            q = f"SELECT COUNT(*) FROM (SELECT 1 FROM follow_edges WHERE {where} LIMIT ?)"
            params.append(int(limit))
        with self.db.session() as con:
            row = con.execute(q, params).fetchone()
        return int(row[0]) if row else 0

    def iterate(self, peer_type: Optional[str] = None, peer_id: Optional[str] = None) -> Iterator[Edge]:
        where, params = self._where(peer_type, peer_id)
        q = (
            "SELECT edge_id, owner_type, owner_id, collection, peer_type, peer_id, created_at "
            f"FROM follow_edges WHERE {where} ORDER BY seq"
        )
        with self.db.session() as con:
            rows = con.execute(q, params).fetchall()
        return iter([_row_to_edge(r) for r in rows])


class SQLiteEdgeStore(EdgeStore):
    """SQLite-backed edge store with a uniqueness constraint per pair."""

    def __init__(self, path: str | SQLiteDB):
        self.db = path if isinstance(path, SQLiteDB) else SQLiteDB(path=str(Path(path).expanduser()))
        self._initialized = False

    def connect(self) -> None:
        if not self._initialized:
            self.db.init()
            self._initialized = True
            logger.info(f"SQLite edge store ready at {self.db.path}")

    def collection(self, owner: NodeRef, collection: Collection) -> SQLiteEdgeCollection:
        self.connect()
        return SQLiteEdgeCollection(self.db, owner, collection)

    def close(self) -> None:
        self.db.close()
        self._initialized = False


class SQLiteNodeRepository:
    """Stores FollowableNode documents as JSON rows, one repository per type."""

    def __init__(self, db: SQLiteDB, type_name: str):
        self.db = db
        self.type_name = canonical_type(type_name)
        self.db.init()

    def get(self, node_id: str) -> FollowableNode | None:
        with self.db.session() as con:
            row = con.execute(
                "SELECT doc_json FROM nodes WHERE node_type=? AND node_id=?",
                (self.type_name, str(node_id)),
            ).fetchone()
        return FollowableNode.from_doc(json.loads(row[0])) if row else None

    def all(self) -> Iterator[FollowableNode]:
        with self.db.session() as con:
            rows = con.execute(
                "SELECT doc_json FROM nodes WHERE node_type=? ORDER BY seq", (self.type_name,)
            ).fetchall()
        return iter([FollowableNode.from_doc(json.loads(r[0])) for r in rows])

    def save(self, node: FollowableNode) -> None:
        if node.type != self.type_name:
            raise ValueError(f"cannot save {node.ref} in {self.type_name} repository")
        try:
            with self.db.session() as con:
                con.execute(
                    """
                    INSERT INTO nodes(node_type, node_id, doc_json, updated_at)
                    VALUES(?,?,?,?)
                    ON CONFLICT(node_type, node_id)
                    DO UPDATE SET doc_json=excluded.doc_json, updated_at=excluded.updated_at
                    """,
                    (node.type, node.id, json.dumps(node.to_doc(), ensure_ascii=False), time.time()),
                )
        except sqlite3.IntegrityError as e:
            logger.error(f"Failed to save node {node.ref}: {e}")
            raise StoreError(str(e)) from e
