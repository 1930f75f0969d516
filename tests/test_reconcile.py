import pytest

from followable import FollowGraph, NodeRef, RepairStrategy
from followable.store import InMemoryEdgeStore


def test_consistent_pair_is_left_alone(graph, jim, tom):
    graph.follow(jim, tom)

    report = graph.manager.reconcile(tom)

    assert report.checked == 1
    assert report.repaired == 0
    assert graph.manager.follower_of(jim, tom)


def test_remove_orphan_followers_half(graph, jim, tom):
    graph.store.followers(tom.ref).create("User", "jim")

    report = graph.manager.reconcile(tom, RepairStrategy.REMOVE)

    assert [e.peer for e in report.removed] == [jim.ref]
    assert graph.store.followers(tom.ref).count_where() == 0
    assert not graph.manager.is_torn(jim, tom)


def test_complete_orphan_followers_half(graph, jim, tom):
    graph.store.followers(tom.ref).create("User", "jim")

    report = graph.manager.reconcile(tom, RepairStrategy.COMPLETE)

    assert len(report.completed) == 1
    assert report.completed[0].owner == jim.ref
    assert graph.manager.follower_of(jim, tom)


def test_complete_orphan_followees_half_from_follower_side(graph, jim, tom):
    graph.store.followees(jim.ref).create("User", "tom")

    report = graph.manager.reconcile(jim, RepairStrategy.COMPLETE)

    assert len(report.completed) == 1
    assert graph.store.followers(tom.ref).count_peer(jim.ref) == 1
    assert graph.manager.follower_of(jim, tom)


def test_orphan_to_missing_peer_is_always_removed(graph, tom):
    graph.store.followers(tom.ref).create("User", "ghost")

    report = graph.manager.reconcile(tom, RepairStrategy.COMPLETE)

    assert report.completed == []
    assert [e.peer for e in report.removed] == [NodeRef("User", "ghost")]
    assert graph.store.followers(tom.ref).count_where() == 0


class TestDuplicates:
    @pytest.fixture
    def graph(self, registry):
        return FollowGraph.build(InMemoryEdgeStore(enforce_unique=False), registry)

    def test_duplicate_halves_collapse_to_one(self, graph, jim, tom):
        graph.store.followers(tom.ref).create("User", "jim")
        graph.store.followers(tom.ref).create("User", "jim")
        graph.store.followees(jim.ref).create("User", "tom")
        graph.store.followees(jim.ref).create("User", "tom")

        report = graph.manager.reconcile(tom)

        assert len(report.deduplicated) == 2
        assert report.removed == []
        assert graph.store.followers(tom.ref).count_where() == 1
        assert graph.store.followees(jim.ref).count_where() == 1
        assert graph.manager.follower_of(jim, tom)

    def test_unfollow_after_dedupe_leaves_nothing(self, graph, jim, tom):
        graph.store.followers(tom.ref).create("User", "jim")
        graph.store.followers(tom.ref).create("User", "jim")
        graph.store.followees(jim.ref).create("User", "tom")

        graph.manager.reconcile(tom)
        graph.unfollow(jim, tom)

        assert graph.store.followers(tom.ref).count_where() == 0
        assert graph.store.followees(jim.ref).count_where() == 0


def test_reconcile_all_sweeps_every_type(graph, jim, tom, ruby):
    graph.follow(jim, tom)
    graph.store.followers(ruby.ref).create("User", "tom")

    reports = graph.manager.reconcile_all()

    assert [r.node for r in reports] == [jim.ref, tom.ref, ruby.ref]
    assert sum(r.repaired for r in reports) == 1
    assert graph.query.followers_count(ruby) == 0


def test_reconcile_all_limited_to_types(graph, jim, ruby):
    graph.store.followers(ruby.ref).create("User", "jim")

    reports = graph.manager.reconcile_all(["User"])

    assert [r.node for r in reports] == [jim.ref]
    assert graph.manager.is_torn(jim, ruby)
