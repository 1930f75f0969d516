from __future__ import annotations

import logging

from .errors import UnknownNodeTypeError
from .models import FollowableNode, Role, canonical_type
from .registry import NodeTypeRegistry

logger = logging.getLogger(__name__)


class AuthorizationPolicy:
    """Per-node block lists.

    ``cannot_follow`` holds the types a node refuses to follow (it acts as
    follower); ``cannot_followed`` holds the types not allowed to follow it
    (it acts as followee). Both are checked only at follow time.
    """

    def __init__(self, registry: NodeTypeRegistry, strict: bool = False):
        self.registry = registry
        self.strict = strict

    @staticmethod
    def _target(node: FollowableNode, role: Role) -> set[str]:
        return node.cannot_follow if role is Role.FOLLOWER else node.cannot_followed

    def _names(self, type_names: tuple[str, ...]) -> list[str]:
        names = [canonical_type(t) for t in type_names]
        if self.strict:
            for name in names:
                if not self.registry.is_registered(name):
                    raise UnknownNodeTypeError(name)
        return names

    def set_authorization(self, node: FollowableNode, role: Role, *type_names: str) -> set[str]:
        names = self._names(type_names)
        stored = self.registry.update(node, lambda n: self._target(n, role).update(names))
        blocked = set(self._target(stored, role))
        logger.info(f"{node.ref} blocks {role.value} types {sorted(blocked)}")
        return blocked

    def unset_authorization(self, node: FollowableNode, role: Role, *type_names: str) -> set[str]:
        names = [canonical_type(t) for t in type_names]
        stored = self.registry.update(node, lambda n: self._target(n, role).difference_update(names))
        return set(self._target(stored, role))

    def is_denied(self, follower: FollowableNode, followee: FollowableNode) -> bool:
        follower = self.registry.current(follower)
        followee = self.registry.current(followee)
        return followee.type in follower.cannot_follow or follower.type in followee.cannot_followed
