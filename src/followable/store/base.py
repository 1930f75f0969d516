"""
Edge store abstractions for followable.

Every node owns two edge collections, ``followers`` and ``followees``. A
backend only has to provide create, delete, filtered count and filtered
iteration per collection; the relationship logic never talks to storage in any
other way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Optional

from ..models import Collection, Edge, NodeRef, canonical_type


class EdgeCollection(ABC):
    """One node's ``followers`` or ``followees`` collection."""

    def __init__(self, owner: NodeRef, collection: Collection):
        self.owner = owner
        self.collection = collection

    @abstractmethod
    def create(self, peer_type: str, peer_id: str) -> Edge:
        """Create an edge to ``(peer_type, peer_id)``.

        Raises DuplicateEdgeError when the edge already exists.
        """
        pass

    @abstractmethod
    def delete(self, edge: Edge) -> None:
        """Delete a single edge by id."""
        pass

    @abstractmethod
    def count_where(
        self,
        peer_type: Optional[str] = None,
        peer_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> int:
        """Count edges matching the peer filter, stopping at ``limit`` when given."""
        pass

    @abstractmethod
    def iterate(
        self,
        peer_type: Optional[str] = None,
        peer_id: Optional[str] = None,
    ) -> Iterator[Edge]:
        """Iterate matching edges in insertion order."""
        pass

    # Convenience helpers built on the four primitives

    def count_peer(self, peer: NodeRef, limit: Optional[int] = 1) -> int:
        return self.count_where(peer.type, peer.id, limit=limit)

    def first(self, peer: NodeRef) -> Optional[Edge]:
        return next(iter(self.iterate(peer.type, peer.id)), None)

    @staticmethod
    def _normalize(peer_type: Optional[str], peer_id: Optional[str]) -> tuple[Optional[str], Optional[str]]:
        return (
            canonical_type(peer_type) if peer_type is not None else None,
            str(peer_id) if peer_id is not None else None,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.owner}, {self.collection.value})"


class EdgeStore(ABC):
    """Factory for per-node edge collections."""

    @abstractmethod
    def collection(self, owner: NodeRef, collection: Collection) -> EdgeCollection:
        """Return ``owner``'s edge collection of the given kind."""
        pass

    def connect(self) -> None:
        """Open connections and ensure schema. No-op by default."""

    def close(self) -> None:
        """Release resources. No-op by default."""

    def followers(self, owner: NodeRef) -> EdgeCollection:
        return self.collection(owner, Collection.FOLLOWERS)

    def followees(self, owner: NodeRef) -> EdgeCollection:
        return self.collection(owner, Collection.FOLLOWEES)

    def paired(self, owner: NodeRef, collection: Collection, peer_type: Optional[str] = None) -> list[Edge]:
        """Edges of ``owner``'s collection whose counterpart half also exists.

        One-sided (torn) halves are skipped, so views built on this agree
        with the both-halves relationship check.
        """
        return [
            edge
            for edge in self.collection(owner, collection).iterate(peer_type=peer_type)
            if self.collection(edge.peer, collection.opposite).count_peer(owner, limit=1)
        ]

    def __enter__(self) -> "EdgeStore":
        self.connect()
        return self

    def __exit__(self, *exc) -> None:
        self.close()
