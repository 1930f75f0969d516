from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Event
from typing import Optional

from .errors import RankingCancelled
from .models import Collection, Extreme, FollowableNode, NodeRef
from .registry import NodeTypeRegistry
from .store.base import EdgeStore

logger = logging.getLogger(__name__)


def _collection_for(role: Collection | str) -> Collection:
    return role if isinstance(role, Collection) else Collection(str(role).lower())


@dataclass(slots=True)
class AggregationEngine:
    """Global ranking over every node of a type.

    This is a full scan over every node and its edges, with one bounded
    counterpart lookup per edge so that torn halves are not counted. It is
    the main scalability limit of the library, so callers can pass a
    cancellation event.
    """

    store: EdgeStore
    registry: NodeTypeRegistry

    def count(self, node: FollowableNode, role: Collection | str, by_type: Optional[str] = None) -> int:
        return len(self.store.paired(node.ref, _collection_for(role), by_type))

    def counts(
        self, node_type: str, role: Collection | str, by_type: Optional[str] = None
    ) -> dict[NodeRef, int]:
        return {n.ref: self.count(n, role, by_type) for n in self.registry.nodes(node_type)}

    def rank_nodes(
        self,
        node_type: str,
        role: Collection | str,
        extreme: Extreme | str,
        by_type: Optional[str] = None,
        cancel: Optional[Event] = None,
    ) -> list[FollowableNode]:
        """Every node of ``node_type`` whose count equals the max (or min).

        ``role`` selects followers or followees; ``by_type`` restricts the
        count to peers of that type. Ties are all returned, in repository
        order. No nodes means an empty list.
        """
        extreme = Extreme(extreme)
        best: Optional[int] = None
        winners: list[FollowableNode] = []
        scanned = 0
        for node in self.registry.nodes(node_type):
            if cancel is not None and cancel.is_set():
                raise RankingCancelled(f"rank_nodes({node_type}) cancelled after {scanned} nodes")
            scanned += 1
            n = self.count(node, role, by_type)
            if best is None or (n > best if extreme is Extreme.MAX else n < best):
                best = n
                winners = [node]
            elif n == best:
                winners.append(node)

        logger.debug(f"rank_nodes({node_type}, {role}, {extreme.value}, by_type={by_type}) scanned {scanned}")
        return winners

    # Named shortcuts matching the familiar with_max_followers style

    def with_max_followers(self, node_type: str, by_type: Optional[str] = None) -> list[FollowableNode]:
        return self.rank_nodes(node_type, Collection.FOLLOWERS, Extreme.MAX, by_type)

    def with_min_followers(self, node_type: str, by_type: Optional[str] = None) -> list[FollowableNode]:
        return self.rank_nodes(node_type, Collection.FOLLOWERS, Extreme.MIN, by_type)

    def with_max_followees(self, node_type: str, by_type: Optional[str] = None) -> list[FollowableNode]:
        return self.rank_nodes(node_type, Collection.FOLLOWEES, Extreme.MAX, by_type)

    def with_min_followees(self, node_type: str, by_type: Optional[str] = None) -> list[FollowableNode]:
        return self.rank_nodes(node_type, Collection.FOLLOWEES, Extreme.MIN, by_type)
