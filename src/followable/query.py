from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .history import HistoryLog
from .manager import RelationshipManager
from .models import Collection, Direction, Edge, FollowableNode
from .registry import NodeTypeRegistry
from .store.base import EdgeStore


def _intersect(left: list[FollowableNode], right: list[FollowableNode]) -> list[FollowableNode]:
    right_refs = {n.ref for n in right}
    seen = set()
    out = []
    for node in left:
        if node.ref in right_refs and node.ref not in seen:
            seen.add(node.ref)
            out.append(node)
    return out


@dataclass(slots=True)
class QueryFacade:
    """Read-only views over the edge store and registry.

    Lists and counts only include relationships whose two halves are both
    present; a torn half never shows up here.
    """

    store: EdgeStore
    registry: NodeTypeRegistry
    manager: RelationshipManager
    history: HistoryLog

    def _rebuild(self, edges: list[Edge]) -> list[FollowableNode]:
        return [self.registry.resolve(e.peer_type, e.peer_id) for e in edges]

    def _edges(self, node: FollowableNode, coll: Collection, by_type: Optional[str]) -> list[Edge]:
        return self.store.paired(node.ref, coll, by_type)

    def followers_of(self, node: FollowableNode, by_type: Optional[str] = None) -> list[FollowableNode]:
        return self._rebuild(self._edges(node, Collection.FOLLOWERS, by_type))

    def followees_of(self, node: FollowableNode, by_type: Optional[str] = None) -> list[FollowableNode]:
        return self._rebuild(self._edges(node, Collection.FOLLOWEES, by_type))

    def followers_count(self, node: FollowableNode, by_type: Optional[str] = None) -> int:
        return len(self._edges(node, Collection.FOLLOWERS, by_type))

    def followees_count(self, node: FollowableNode, by_type: Optional[str] = None) -> int:
        return len(self._edges(node, Collection.FOLLOWEES, by_type))

    def is_follower_of(self, a: FollowableNode, b: FollowableNode) -> bool:
        return self.manager.related_as(a, b, Direction.FOLLOWER)

    def is_followee_of(self, a: FollowableNode, b: FollowableNode) -> bool:
        return self.manager.related_as(a, b, Direction.FOLLOWEE)

    def common_followees(self, a: FollowableNode, b: FollowableNode) -> list[FollowableNode]:
        return _intersect(self.followees_of(a), self.followees_of(b))

    def has_common_followees(self, a: FollowableNode, b: FollowableNode) -> bool:
        return len(self.common_followees(a, b)) > 0

    def common_followers(self, a: FollowableNode, b: FollowableNode) -> list[FollowableNode]:
        return _intersect(self.followers_of(a), self.followers_of(b))

    def has_common_followers(self, a: FollowableNode, b: FollowableNode) -> bool:
        return len(self.common_followers(a, b)) > 0

    def follow_history_of(self, node: FollowableNode) -> list[FollowableNode]:
        return self.history.follow_history_of(node)

    def followed_history_of(self, node: FollowableNode) -> list[FollowableNode]:
        return self.history.followed_history_of(node)
