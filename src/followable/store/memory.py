from __future__ import annotations

from collections.abc import Iterator
from threading import RLock
from typing import Optional

from ..errors import DuplicateEdgeError
from ..models import Collection, Edge, NodeRef, canonical_type
from .base import EdgeCollection, EdgeStore

_Key = tuple[str, str, str]  # (owner_type, owner_id, collection)


class InMemoryEdgeCollection(EdgeCollection):
    def __init__(self, store: "InMemoryEdgeStore", owner: NodeRef, collection: Collection):
        super().__init__(owner, collection)
        self._store = store
        self._key: _Key = (owner.type, owner.id, collection.value)

    def _edges(self) -> list[Edge]:
        return self._store._edges.setdefault(self._key, [])

    def create(self, peer_type: str, peer_id: str) -> Edge:
        peer_type = canonical_type(peer_type)
        peer_id = str(peer_id)
        with self._store._lock:
            edges = self._edges()
            if self._store.enforce_unique and any(
                e.peer_type == peer_type and e.peer_id == peer_id for e in edges
            ):
                raise DuplicateEdgeError(
                    f"{self.owner} already has {self.collection.value} edge to {peer_type}:{peer_id}"
                )
            edge = Edge(owner=self.owner, collection=self.collection, peer_type=peer_type, peer_id=peer_id)
            edges.append(edge)
            return edge

    def delete(self, edge: Edge) -> None:
        with self._store._lock:
            edges = self._edges()
            edges[:] = [e for e in edges if e.id != edge.id]

    def _matching(self, peer_type: Optional[str], peer_id: Optional[str]) -> list[Edge]:
        peer_type, peer_id = self._normalize(peer_type, peer_id)
        with self._store._lock:
            edges = list(self._store._edges.get(self._key, ()))
        return [
            e
            for e in edges
            if (peer_type is None or e.peer_type == peer_type) and (peer_id is None or e.peer_id == peer_id)
        ]

    def count_where(
        self,
        peer_type: Optional[str] = None,
        peer_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> int:
        n = len(self._matching(peer_type, peer_id))
        return n if limit is None else min(n, limit)

    def iterate(self, peer_type: Optional[str] = None, peer_id: Optional[str] = None) -> Iterator[Edge]:
        return iter(self._matching(peer_type, peer_id))


class InMemoryEdgeStore(EdgeStore):
    """Process-local edge store.

    ``enforce_unique=False`` drops the pair uniqueness constraint, which lets
    tests reproduce legacy duplicate halves for reconciliation.
    """

    def __init__(self, enforce_unique: bool = True):
        self.enforce_unique = enforce_unique
        self._edges: dict[_Key, list[Edge]] = {}
        self._lock = RLock()

    def collection(self, owner: NodeRef, collection: Collection) -> InMemoryEdgeCollection:
        return InMemoryEdgeCollection(self, owner, collection)

    def close(self) -> None:
        with self._lock:
            self._edges.clear()
