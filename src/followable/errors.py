from __future__ import annotations

from typing import Any


class FollowableError(Exception):
    """Base class for all followable errors."""


class NodeNotFoundError(FollowableError, LookupError):
    def __init__(self, type_name: str, node_id: Any):
        self.type_name = type_name
        self.node_id = node_id
        super().__init__(f"node {type_name}:{node_id} not found")


class UnknownNodeTypeError(NodeNotFoundError):
    def __init__(self, type_name: str, node_id: Any = None):
        super().__init__(type_name, node_id)
        self.args = (f"node type {type_name!r} is not registered",)


class StoreError(FollowableError):
    """An edge store or node repository operation failed."""


class DuplicateEdgeError(StoreError):
    """The store rejected an edge that would violate pair uniqueness."""


class PartialWriteError(StoreError):
    """The first half of a dual write landed, the second did not.

    No rollback is attempted: the pair is left torn until ``reconcile`` runs.
    """

    def __init__(self, operation: str, follower: Any, followee: Any, cause: Exception):
        self.operation = operation
        self.follower = follower
        self.followee = followee
        self.cause = cause
        super().__init__(
            f"{operation} {follower} -> {followee} left a torn relationship: {cause}"
        )


class RankingCancelled(FollowableError):
    """``rank_nodes`` was cancelled before it finished scanning."""
