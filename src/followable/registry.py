from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from threading import Lock
from typing import Protocol

from .errors import NodeNotFoundError, UnknownNodeTypeError
from .models import FollowableNode, NodeRef, canonical_type

logger = logging.getLogger(__name__)


class NodeRepository(Protocol):
    """Host-supplied persistence for one node type."""

    def get(self, node_id: str) -> FollowableNode | None: ...

    def all(self) -> Iterable[FollowableNode]: ...

    def save(self, node: FollowableNode) -> None: ...


class InMemoryNodeRepository:
    """Dict-backed repository, insertion ordered. Used in tests and embedding."""

    def __init__(self, type_name: str, nodes: Iterable[FollowableNode] = ()):
        self.type_name = canonical_type(type_name)
        self._nodes: dict[str, FollowableNode] = {}
        self._lock = Lock()
        for node in nodes:
            self.save(node)

    def get(self, node_id: str) -> FollowableNode | None:
        return self._nodes.get(str(node_id))

    def all(self) -> Iterator[FollowableNode]:
        with self._lock:
            nodes = list(self._nodes.values())
        return iter(nodes)

    def save(self, node: FollowableNode) -> None:
        if node.type != self.type_name:
            raise ValueError(f"cannot save {node.ref} in {self.type_name} repository")
        with self._lock:
            self._nodes[node.id] = node

    def add(self, node_id: str, **attributes) -> FollowableNode:
        node = FollowableNode(type=self.type_name, id=node_id, attributes=attributes)
        self.save(node)
        return node

    def delete(self, node_id: str) -> None:
        with self._lock:
            self._nodes.pop(str(node_id), None)

    def __len__(self) -> int:
        return len(self._nodes)


class NodeTypeRegistry:
    """Maps canonical type names to the repository that resolves them.

    Populated by the host application at startup; any type name not
    registered here fails resolution.
    """

    def __init__(self, lock_stripes: int = 64):
        self._repos: dict[str, NodeRepository] = {}
        self._locks = [Lock() for _ in range(max(1, lock_stripes))]

    def register(self, type_name: str, repository: NodeRepository) -> None:
        key = canonical_type(type_name)
        if key in self._repos:
            logger.warning(f"Replacing repository for node type {key}")
        self._repos[key] = repository

    def repository(self, type_name: str) -> NodeRepository:
        key = canonical_type(type_name)
        try:
            return self._repos[key]
        except KeyError:
            raise UnknownNodeTypeError(key) from None

    def is_registered(self, type_name: str) -> bool:
        return canonical_type(type_name) in self._repos

    def types(self) -> list[str]:
        return list(self._repos)

    def resolve(self, type_name: str, node_id) -> FollowableNode:
        repo = self.repository(type_name)
        node = repo.get(str(node_id))
        if node is None:
            raise NodeNotFoundError(canonical_type(type_name), node_id)
        return node

    def resolve_ref(self, ref: NodeRef) -> FollowableNode:
        return self.resolve(ref.type, ref.id)

    def nodes(self, type_name: str) -> Iterable[FollowableNode]:
        return self.repository(type_name).all()

    def save(self, node: FollowableNode) -> None:
        self.repository(node.type).save(node)

    def current(self, node: FollowableNode) -> FollowableNode:
        """The stored copy of ``node``, or ``node`` itself when it was never saved."""
        return self.repository(node.type).get(node.id) or node

    def update(self, node: FollowableNode, mutate: Callable[[FollowableNode], None]) -> FollowableNode:
        """Apply ``mutate`` to the stored copy of ``node`` and save it.

        The stored record is re-read under a per-node lock, so concurrent
        updates through differently loaded copies of the same node do not
        overwrite each other. The caller's copy is refreshed afterwards.
        """
        repo = self.repository(node.type)
        with self._locks[hash(node.ref) % len(self._locks)]:
            stored = repo.get(node.id) or node
            mutate(stored)
            repo.save(stored)
        if stored is not node:
            node.cannot_follow = set(stored.cannot_follow)
            node.cannot_followed = set(stored.cannot_followed)
            node.follow_history = list(stored.follow_history)
            node.followed_history = list(stored.followed_history)
        return stored
