"""
ArangoDB implementation of the followable edge store.

ArangoDB is a document store first, which matches the data model here: every
edge half is an independent document and there is no multi-document
transaction between the two halves of a relationship.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any, Dict, Optional, Tuple

from arango import ArangoClient
from arango.database import StandardDatabase
from arango.exceptions import (
    ArangoError,
    DocumentDeleteError,
    DocumentInsertError,
)

from ..errors import DuplicateEdgeError, StoreError
from ..models import Collection, Edge, FollowableNode, NodeRef, canonical_type
from .base import EdgeCollection, EdgeStore

logger = logging.getLogger(__name__)

# ArangoDB "unique constraint violated"
ERROR_UNIQUE_CONSTRAINT = 1210

# Characters ArangoDB accepts in a document _key
_KEY_SAFE = re.compile(r"[A-Za-z0-9_\-:.@()+,=;$!*'%]+")
_KEY_MAX = 254


class ArangoEdgeCollection(EdgeCollection):
    def __init__(self, store: "ArangoEdgeStore", owner: NodeRef, collection: Collection):
        super().__init__(owner, collection)
        self.store = store

    def _filters(self, peer_type: Optional[str], peer_id: Optional[str]) -> Tuple[str, Dict[str, Any]]:
        peer_type, peer_id = self._normalize(peer_type, peer_id)
        filters = [
            "e.owner_type == @owner_type",
            "e.owner_id == @owner_id",
            "e.collection == @collection",
        ]
        bind_vars: Dict[str, Any] = {
            "@edges": self.store.edge_collection,
            "owner_type": self.owner.type,
            "owner_id": self.owner.id,
            "collection": self.collection.value,
        }
        if peer_type is not None:
            filters.append("e.peer_type == @peer_type")
            bind_vars["peer_type"] = peer_type
        if peer_id is not None:
            filters.append("e.peer_id == @peer_id")
            bind_vars["peer_id"] = peer_id
        return " AND ".join(filters), bind_vars

    def create(self, peer_type: str, peer_id: str) -> Edge:
        edge = Edge(
            owner=self.owner,
            collection=self.collection,
            peer_type=canonical_type(peer_type),
            peer_id=str(peer_id),
        )
        try:
            self.store.db.collection(self.store.edge_collection).insert(self.store._edge_to_doc(edge))
        except DocumentInsertError as e:
            if e.error_code == ERROR_UNIQUE_CONSTRAINT:
                raise DuplicateEdgeError(
                    f"{self.owner} already has {self.collection.value} edge to {edge.peer}"
                ) from e
            logger.error(f"Failed to create edge {self.owner} -> {edge.peer}: {e}")
            raise StoreError(str(e)) from e
        return edge

    def delete(self, edge: Edge) -> None:
        try:
            self.store.db.collection(self.store.edge_collection).delete({"_key": edge.id})
        except DocumentDeleteError as e:
            logger.error(f"Failed to delete edge {edge.id}: {e}")
            raise StoreError(str(e)) from e

    def count_where(
        self,
        peer_type: Optional[str] = None,
        peer_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> int:
        filters, bind_vars = self._filters(peer_type, peer_id)
        limit_clause = ""
        if limit is not None:
            limit_clause = "LIMIT @limit"
            bind_vars["limit"] = int(limit)
        query = f"""
        RETURN LENGTH(
            FOR e IN @@edges
                FILTER {filters}
                {limit_clause}
                RETURN 1
        )
        """
        rows = self.store._execute(query, bind_vars)
        return int(rows[0]) if rows else 0

    def iterate(self, peer_type: Optional[str] = None, peer_id: Optional[str] = None) -> Iterator[Edge]:
        filters, bind_vars = self._filters(peer_type, peer_id)
        query = f"""
        FOR e IN @@edges
            FILTER {filters}
            SORT e.seq ASC
            RETURN e
        """
        return iter([self.store._doc_to_edge(doc) for doc in self.store._execute(query, bind_vars)])


class ArangoEdgeStore(EdgeStore):
    """
    Edge store keeping both halves of every relationship in one document
    collection, keyed by a persistent unique index on
    ``(owner_type, owner_id, collection, peer_type, peer_id)``.
    """

    def __init__(
        self,
        url: str = "http://localhost:8529",
        username: str = "root",
        password: str = "",
        database: str = "followable",
        edge_collection: str = "follow_edges",
        db: Optional[StandardDatabase] = None,
    ):
        self.url = url
        self.username = username
        self.password = password
        self.database_name = database
        self.edge_collection = edge_collection

        self.client: Optional[ArangoClient] = None
        self.db: Optional[StandardDatabase] = db

    def connect(self) -> None:
        """Establish connection to ArangoDB and ensure the collection and index."""
        if self.db is not None:
            return
        try:
            self.client = ArangoClient(hosts=self.url)

            sys_db = self.client.db("_system", username=self.username, password=self.password)
            if not sys_db.has_database(self.database_name):
                sys_db.create_database(self.database_name)

            self.db = self.client.db(self.database_name, username=self.username, password=self.password)
            self._ensure_schema()

            logger.info(f"Connected to ArangoDB at {self.url}")
        except ArangoError as e:
            logger.error(f"Failed to connect to ArangoDB: {e}")
            raise StoreError(str(e)) from e

    def _ensure_schema(self) -> None:
        if not self.db.has_collection(self.edge_collection):
            self.db.create_collection(self.edge_collection)
        edges_col = self.db.collection(self.edge_collection)
        edges_col.add_persistent_index(
            fields=["owner_type", "owner_id", "collection", "peer_type", "peer_id"],
            unique=True,
        )
        edges_col.add_persistent_index(fields=["owner_type", "owner_id", "collection", "seq"])

    def close(self) -> None:
        if self.client:
            self.client.close()
            logger.info("Disconnected from ArangoDB")

    def collection(self, owner: NodeRef, collection: Collection) -> ArangoEdgeCollection:
        if self.db is None:
            self.connect()
        return ArangoEdgeCollection(self, owner, collection)

    def _execute(self, query: str, bind_vars: Dict[str, Any]) -> list:
        try:
            return list(self.db.aql.execute(query, bind_vars=bind_vars))
        except ArangoError as e:
            logger.error(f"AQL query failed: {e}")
            raise StoreError(str(e)) from e

    @staticmethod
    def _edge_to_doc(edge: Edge) -> Dict[str, Any]:
        return {
            "_key": edge.id,
            "owner_type": edge.owner.type,
            "owner_id": edge.owner.id,
            "collection": edge.collection.value,
            "peer_type": edge.peer_type,
            "peer_id": edge.peer_id,
            "created_at": edge.created_at.isoformat(),
            "seq": time.time_ns(),
        }

    @staticmethod
    def _doc_to_edge(doc: Dict[str, Any]) -> Edge:
        return Edge(
            id=doc["_key"],
            owner=NodeRef(doc["owner_type"], doc["owner_id"]),
            collection=Collection(doc["collection"]),
            peer_type=doc["peer_type"],
            peer_id=doc["peer_id"],
            created_at=datetime.fromisoformat(doc["created_at"]) if doc.get("created_at") else datetime.now(UTC),
        )


class ArangoNodeRepository:
    """Node documents for one type, stored in a shared ``<prefix>_nodes`` collection."""

    def __init__(self, store: ArangoEdgeStore, type_name: str, collection: str = "followable_nodes"):
        self.store = store
        self.type_name = canonical_type(type_name)
        self.collection_name = collection

    def _collection(self):
        if self.store.db is None:
            self.store.connect()
        if not self.store.db.has_collection(self.collection_name):
            self.store.db.create_collection(self.collection_name)
        return self.store.db.collection(self.collection_name)

    def _key(self, node_id: str) -> str:
        key = f"{self.type_name}:{node_id}"
        if len(key) <= _KEY_MAX and _KEY_SAFE.fullmatch(key):
            return key
        # canonical type names start upper-case, so "h$" cannot clash with a readable key
        return "h$" + hashlib.sha256(key.encode("utf-8")).hexdigest()

    def get(self, node_id: str) -> FollowableNode | None:
        try:
            doc = self._collection().get({"_key": self._key(str(node_id))})
        except ArangoError as e:
            raise StoreError(str(e)) from e
        return FollowableNode.from_doc(doc) if doc else None

    def all(self) -> Iterator[FollowableNode]:
        self._collection()
        query = """
        FOR n IN @@nodes
            FILTER n.type == @type
            SORT n.seq ASC
            RETURN n
        """
        docs = self.store._execute(query, {"@nodes": self.collection_name, "type": self.type_name})
        return iter([FollowableNode.from_doc(d) for d in docs])

    def save(self, node: FollowableNode) -> None:
        if node.type != self.type_name:
            raise ValueError(f"cannot save {node.ref} in {self.type_name} repository")
        col = self._collection()
        doc = node.to_doc()
        doc["_key"] = self._key(node.id)
        try:
            existing = col.get({"_key": doc["_key"]})
            doc["seq"] = existing.get("seq") if existing else time.time_ns()
            col.insert(doc, overwrite=True)
        except ArangoError as e:
            logger.error(f"Failed to save node {node.ref}: {e}")
            raise StoreError(str(e)) from e
