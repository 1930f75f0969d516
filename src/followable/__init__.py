"""
followable - directed follow relationships between heterogeneous nodes

Each relationship is stored as two independent edge records (one per side)
on a store without multi-record transactions. The package keeps the pair
consistent, idempotent and authorized, and can rank nodes by follower or
followee counts.
"""

from .aggregation import AggregationEngine
from .authorization import AuthorizationPolicy
from .errors import (
    DuplicateEdgeError,
    FollowableError,
    NodeNotFoundError,
    PartialWriteError,
    RankingCancelled,
    StoreError,
    UnknownNodeTypeError,
)
from .graph import FollowGraph
from .history import HistoryLog
from .manager import RelationshipManager
from .models import (
    Collection,
    Direction,
    Edge,
    Extreme,
    FollowableNode,
    FollowOutcome,
    FollowResult,
    HistoryEntry,
    NodeRef,
    ReconcileReport,
    RepairStrategy,
    Role,
    UnfollowOutcome,
    UnfollowResult,
    canonical_type,
)
from .query import QueryFacade
from .registry import InMemoryNodeRepository, NodeRepository, NodeTypeRegistry

__version__ = "0.1.0"

__all__ = [
    "AggregationEngine",
    "AuthorizationPolicy",
    "Collection",
    "Direction",
    "DuplicateEdgeError",
    "Edge",
    "Extreme",
    "FollowGraph",
    "FollowOutcome",
    "FollowResult",
    "FollowableError",
    "FollowableNode",
    "HistoryEntry",
    "HistoryLog",
    "InMemoryNodeRepository",
    "NodeNotFoundError",
    "NodeRef",
    "NodeRepository",
    "NodeTypeRegistry",
    "PartialWriteError",
    "QueryFacade",
    "RankingCancelled",
    "ReconcileReport",
    "RelationshipManager",
    "RepairStrategy",
    "Role",
    "StoreError",
    "UnfollowOutcome",
    "UnfollowResult",
    "UnknownNodeTypeError",
    "canonical_type",
]
