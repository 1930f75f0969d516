from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple


def canonical_type(name: str) -> str:
    """Normalise a node type name: ``"user"`` and ``"USER"`` both become ``"User"``."""
    return str(name).strip().capitalize()


class Role(Enum):
    """Which side of a relationship a node plays."""

    FOLLOWER = "follower"
    FOLLOWEE = "followee"


class Collection(Enum):
    """Per-node edge collections."""

    FOLLOWERS = "followers"
    FOLLOWEES = "followees"

    @property
    def opposite(self) -> "Collection":
        return Collection.FOLLOWEES if self is Collection.FOLLOWERS else Collection.FOLLOWERS


class Direction(Enum):
    FOLLOWER = "follower"  # subject follows object
    FOLLOWEE = "followee"  # subject is followed by object


class Extreme(Enum):
    MAX = "max"
    MIN = "min"


@dataclass(frozen=True, slots=True)
class NodeRef:
    """Identity of a node: canonical type name plus primary key."""

    type: str
    id: str

    @classmethod
    def of(cls, type_name: str, node_id: Any) -> "NodeRef":
        return cls(type=canonical_type(type_name), id=str(node_id))

    def __str__(self) -> str:
        return f"{self.type}:{self.id}"


class HistoryEntry(NamedTuple):
    type: str
    id: str

    @property
    def ref(self) -> NodeRef:
        return NodeRef(self.type, self.id)

    def to_doc(self) -> list[str]:
        return [self.type, self.id]

    @classmethod
    def from_doc(cls, doc: Any) -> "HistoryEntry":
        type_name, node_id = doc
        return cls(canonical_type(type_name), str(node_id))


@dataclass(eq=False)
class FollowableNode:
    """A node taking part in follow relationships.

    The host application owns the node; the library only reads and writes the
    authorization sets and the two history logs, and persists them through the
    node repository registered for the node's type.
    """

    type: str
    id: str
    cannot_follow: set[str] = field(default_factory=set)
    cannot_followed: set[str] = field(default_factory=set)
    follow_history: list[HistoryEntry] = field(default_factory=list)
    followed_history: list[HistoryEntry] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.type = canonical_type(self.type)
        self.id = str(self.id)

    @property
    def ref(self) -> NodeRef:
        return NodeRef(self.type, self.id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FollowableNode):
            return NotImplemented
        return self.ref == other.ref

    def __hash__(self) -> int:
        return hash(self.ref)

    def __repr__(self) -> str:
        return f"FollowableNode({self.ref})"

    def to_doc(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "id": self.id,
            "cannot_follow": sorted(self.cannot_follow),
            "cannot_followed": sorted(self.cannot_followed),
            "follow_history": [e.to_doc() for e in self.follow_history],
            "followed_history": [e.to_doc() for e in self.followed_history],
            "attributes": self.attributes,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> "FollowableNode":
        return cls(
            type=doc["type"],
            id=doc["id"],
            cannot_follow={canonical_type(t) for t in doc.get("cannot_follow", [])},
            cannot_followed={canonical_type(t) for t in doc.get("cannot_followed", [])},
            follow_history=[HistoryEntry.from_doc(e) for e in doc.get("follow_history", [])],
            followed_history=[HistoryEntry.from_doc(e) for e in doc.get("followed_history", [])],
            attributes=dict(doc.get("attributes") or {}),
        )


@dataclass
class Edge:
    """One half of a follow relationship, stored in ``owner``'s collection."""

    owner: NodeRef
    collection: Collection
    peer_type: str
    peer_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def peer(self) -> NodeRef:
        return NodeRef(self.peer_type, self.peer_id)


class FollowOutcome(Enum):
    CREATED = "created"
    ALREADY_RELATED = "already_related"
    DENIED = "denied"
    SELF_REFERENCE = "self_reference"
    TORN = "torn"


class UnfollowOutcome(Enum):
    REMOVED = "removed"
    NOT_RELATED = "not_related"
    SELF_REFERENCE = "self_reference"


@dataclass(frozen=True, slots=True)
class FollowResult:
    target: NodeRef
    outcome: FollowOutcome

    @property
    def created(self) -> bool:
        return self.outcome is FollowOutcome.CREATED


@dataclass(frozen=True, slots=True)
class UnfollowResult:
    target: NodeRef
    outcome: UnfollowOutcome

    @property
    def removed(self) -> bool:
        return self.outcome is UnfollowOutcome.REMOVED


class RepairStrategy(Enum):
    REMOVE = "remove"  # delete the orphan half
    COMPLETE = "complete"  # write the missing half


@dataclass
class ReconcileReport:
    node: NodeRef
    strategy: RepairStrategy
    checked: int = 0
    removed: list[Edge] = field(default_factory=list)
    completed: list[Edge] = field(default_factory=list)
    deduplicated: list[Edge] = field(default_factory=list)

    @property
    def repaired(self) -> int:
        return len(self.removed) + len(self.completed) + len(self.deduplicated)
