"""
Relationship manager: follow, unfollow and repair of dual-written edges.

A relationship "A follows B" is two independent records, a followers-side
edge in B's collection and a followees-side edge in A's collection. The store
has no transaction spanning both, so every write here is a two-step protocol
with a fixed order (followee side first). A crash in between leaves a torn
pair that ``related_as`` reports as "not related" and ``reconcile`` repairs.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Iterable, Optional

from .authorization import AuthorizationPolicy
from .errors import DuplicateEdgeError, NodeNotFoundError, PartialWriteError
from .history import HistoryLog
from .models import (
    Collection,
    Direction,
    Edge,
    FollowableNode,
    FollowOutcome,
    FollowResult,
    NodeRef,
    ReconcileReport,
    RepairStrategy,
    UnfollowOutcome,
    UnfollowResult,
)
from .registry import NodeTypeRegistry
from .store.base import EdgeStore

logger = logging.getLogger(__name__)


class RelationshipManager:
    def __init__(
        self,
        store: EdgeStore,
        registry: NodeTypeRegistry,
        policy: Optional[AuthorizationPolicy] = None,
        history: Optional[HistoryLog] = None,
        lock_stripes: int = 64,
    ):
        self.store = store
        self.registry = registry
        self.policy = policy or AuthorizationPolicy(registry)
        self.history = history or HistoryLog(registry)
        self._locks = [Lock() for _ in range(max(1, lock_stripes))]

    def _lock_for(self, follower: NodeRef, followee: NodeRef) -> Lock:
        return self._locks[hash((follower, followee)) % len(self._locks)]

    # ------------------------------------------------------------------
    # Existence checks
    # ------------------------------------------------------------------

    def _halves(self, follower: NodeRef, followee: NodeRef) -> tuple[int, int]:
        """Bounded counts of (followers-side edge on followee, followees-side edge on follower)."""
        on_followee = self.store.followers(followee).count_peer(follower, limit=1)
        on_follower = self.store.followees(follower).count_peer(followee, limit=1)
        return on_followee, on_follower

    def related_as(self, subject: FollowableNode, obj: FollowableNode, direction: Direction) -> bool:
        """True only when both halves of the relationship are present.

        ``Direction.FOLLOWER``: subject follows obj.
        ``Direction.FOLLOWEE``: subject is followed by obj.
        """
        if direction is Direction.FOLLOWER:
            follower, followee = subject.ref, obj.ref
        else:
            follower, followee = obj.ref, subject.ref
        on_followee, on_follower = self._halves(follower, followee)
        return on_followee * on_follower > 0

    def follower_of(self, subject: FollowableNode, obj: FollowableNode) -> bool:
        return self.related_as(subject, obj, Direction.FOLLOWER)

    def followee_of(self, subject: FollowableNode, obj: FollowableNode) -> bool:
        return self.related_as(subject, obj, Direction.FOLLOWEE)

    def is_torn(self, follower: FollowableNode, followee: FollowableNode) -> bool:
        on_followee, on_follower = self._halves(follower.ref, followee.ref)
        return (on_followee > 0) != (on_follower > 0)

    # ------------------------------------------------------------------
    # Follow / unfollow
    # ------------------------------------------------------------------

    def follow(self, follower: FollowableNode, *followees: FollowableNode) -> list[FollowResult]:
        """Make ``follower`` follow each of ``followees``.

        One result per target. Self-references, existing or torn pairs and
        authorization denials are reported, never raised. A store failure
        after the first half was written raises PartialWriteError; the first
        half is not rolled back.
        """
        return [FollowResult(f.ref, self._follow_one(follower, f)) for f in followees]

    def _follow_one(self, follower: FollowableNode, followee: FollowableNode) -> FollowOutcome:
        if follower.ref == followee.ref:
            return FollowOutcome.SELF_REFERENCE

        with self._lock_for(follower.ref, followee.ref):
            # follower_of(follower, followee) and followee_of(followee, follower)
            # read the same two halves.
            on_followee, on_follower = self._halves(follower.ref, followee.ref)
            if on_followee and on_follower:
                return FollowOutcome.ALREADY_RELATED
            if on_followee or on_follower:
                logger.warning(f"Torn relationship {follower.ref} -> {followee.ref}; reconcile before following")
                return FollowOutcome.TORN
            if self.policy.is_denied(follower, followee):
                logger.info(f"Follow {follower.ref} -> {followee.ref} denied by authorization")
                return FollowOutcome.DENIED

            try:
                self.store.followers(followee.ref).create(follower.type, follower.id)
            except DuplicateEdgeError:
                logger.info(f"Follow {follower.ref} -> {followee.ref} lost a race; already related")
                return FollowOutcome.ALREADY_RELATED

            try:
                self.history.record_followed(followee, follower)
                self.store.followees(follower.ref).create(followee.type, followee.id)
                self.history.record_follow(follower, followee)
            except Exception as e:
                logger.error(f"Follow {follower.ref} -> {followee.ref} failed after first write: {e}")
                raise PartialWriteError("follow", follower.ref, followee.ref, e) from e

        logger.info(f"{follower.ref} now follows {followee.ref}")
        return FollowOutcome.CREATED

    def unfollow(self, follower: FollowableNode, *followees: FollowableNode) -> list[UnfollowResult]:
        """Remove both halves for each target that is currently related. History is kept."""
        return [UnfollowResult(f.ref, self._unfollow_one(follower, f)) for f in followees]

    def _unfollow_one(self, follower: FollowableNode, followee: FollowableNode) -> UnfollowOutcome:
        if follower.ref == followee.ref:
            return UnfollowOutcome.SELF_REFERENCE

        with self._lock_for(follower.ref, followee.ref):
            if not self.follower_of(follower, followee):
                return UnfollowOutcome.NOT_RELATED

            followers_side = self.store.followers(followee.ref)
            followees_side = self.store.followees(follower.ref)
            followers_side.delete(followers_side.first(follower.ref))
            try:
                edge = followees_side.first(followee.ref)
                if edge is not None:
                    followees_side.delete(edge)
            except Exception as e:
                logger.error(f"Unfollow {follower.ref} -> {followee.ref} failed after first delete: {e}")
                raise PartialWriteError("unfollow", follower.ref, followee.ref, e) from e

        logger.info(f"{follower.ref} no longer follows {followee.ref}")
        return UnfollowOutcome.REMOVED

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, node: FollowableNode, strategy: RepairStrategy = RepairStrategy.REMOVE) -> ReconcileReport:
        """Scan ``node``'s collections for one-sided or duplicated edges and repair them.

        ``REMOVE`` deletes the orphan half, ``COMPLETE`` writes the missing
        half. Orphans pointing at peers that no longer resolve are always
        removed. History logs are left alone.
        """
        report = ReconcileReport(node=node.ref, strategy=strategy)
        for coll in (Collection.FOLLOWERS, Collection.FOLLOWEES):
            own = self.store.collection(node.ref, coll)
            for edge in self._dedupe(own, report):
                report.checked += 1
                self._repair_edge(node, edge, strategy, report)

        if report.repaired:
            logger.warning(
                f"Reconciled {node.ref}: removed={len(report.removed)} completed={len(report.completed)} "
                f"deduplicated={len(report.deduplicated)}"
            )
        return report

    def reconcile_all(
        self, type_names: Optional[Iterable[str]] = None, strategy: RepairStrategy = RepairStrategy.REMOVE
    ) -> list[ReconcileReport]:
        """Sweep every node of the given (default: all registered) types."""
        reports = []
        for type_name in type_names or self.registry.types():
            for node in self.registry.nodes(type_name):
                reports.append(self.reconcile(node, strategy))
        return reports

    def _dedupe(self, own, report: ReconcileReport) -> list[Edge]:
        unique: dict[NodeRef, Edge] = {}
        for edge in own.iterate():
            if edge.peer in unique:
                own.delete(edge)
                report.deduplicated.append(edge)
            else:
                unique[edge.peer] = edge
        return list(unique.values())

    def _repair_edge(self, node: FollowableNode, edge: Edge, strategy: RepairStrategy, report: ReconcileReport) -> None:
        peer = edge.peer
        if edge.collection is Collection.FOLLOWERS:
            pair = (peer, node.ref)
        else:
            pair = (node.ref, peer)

        with self._lock_for(*pair):
            counterpart = self.store.collection(peer, edge.collection.opposite)
            if counterpart.count_peer(node.ref, limit=1):
                self._dedupe_peer(counterpart, node.ref, report)
                return

            try:
                self.registry.resolve(peer.type, peer.id)
                dangling = False
            except NodeNotFoundError:
                dangling = True

            if strategy is RepairStrategy.COMPLETE and not dangling:
                report.completed.append(counterpart.create(node.type, node.id))
            else:
                self.store.collection(node.ref, edge.collection).delete(edge)
                report.removed.append(edge)

    def _dedupe_peer(self, counterpart, ref: NodeRef, report: ReconcileReport) -> None:
        for extra in list(counterpart.iterate(ref.type, ref.id))[1:]:
            counterpart.delete(extra)
            report.deduplicated.append(extra)
