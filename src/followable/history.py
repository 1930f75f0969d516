from __future__ import annotations

from .models import FollowableNode, HistoryEntry
from .registry import NodeTypeRegistry


class HistoryLog:
    """Append-only follow history kept on each node.

    Each append is applied to the stored record and persisted immediately.
    Entries survive unfollow. Replay reads the stored record and resolves
    every entry through the registry; a node that no longer exists raises
    NodeNotFoundError.
    """

    def __init__(self, registry: NodeTypeRegistry):
        self.registry = registry

    def record_followed(self, followee: FollowableNode, follower: FollowableNode) -> None:
        entry = HistoryEntry(follower.type, follower.id)
        self.registry.update(followee, lambda stored: stored.followed_history.append(entry))

    def record_follow(self, follower: FollowableNode, followee: FollowableNode) -> None:
        entry = HistoryEntry(followee.type, followee.id)
        self.registry.update(follower, lambda stored: stored.follow_history.append(entry))

    def _replay(self, entries: list[HistoryEntry]) -> list[FollowableNode]:
        return [self.registry.resolve(e.type, e.id) for e in entries]

    def follow_history_of(self, node: FollowableNode) -> list[FollowableNode]:
        return self._replay(list(self.registry.current(node).follow_history))

    def followed_history_of(self, node: FollowableNode) -> list[FollowableNode]:
        return self._replay(list(self.registry.current(node).followed_history))
