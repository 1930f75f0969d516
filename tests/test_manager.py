from concurrent.futures import ThreadPoolExecutor

import pytest

from followable import (
    Direction,
    FollowGraph,
    FollowOutcome,
    PartialWriteError,
    Role,
    StoreError,
    UnfollowOutcome,
)
from followable.models import Collection
from followable.store.memory import InMemoryEdgeCollection


def _edge_counts(graph, follower, followee):
    return (
        graph.store.followers(followee.ref).count_where(),
        graph.store.followees(follower.ref).count_where(),
    )


class TestFollow:
    def test_follow_writes_both_halves(self, graph, jim, tom):
        results = graph.follow(jim, tom)

        assert [r.outcome for r in results] == [FollowOutcome.CREATED]
        assert results[0].target == tom.ref
        assert _edge_counts(graph, jim, tom) == (1, 1)
        assert graph.manager.follower_of(jim, tom)
        assert graph.manager.followee_of(tom, jim)

    def test_follow_is_idempotent(self, graph, jim, tom):
        graph.follow(jim, tom)
        results = graph.follow(jim, tom)

        assert results[0].outcome is FollowOutcome.ALREADY_RELATED
        assert _edge_counts(graph, jim, tom) == (1, 1)
        assert len(jim.follow_history) == 1
        assert len(tom.followed_history) == 1

    def test_self_follow_is_skipped(self, graph, jim):
        results = graph.follow(jim, jim)

        assert results[0].outcome is FollowOutcome.SELF_REFERENCE
        assert graph.store.followers(jim.ref).count_where() == 0
        assert graph.store.followees(jim.ref).count_where() == 0
        assert jim.follow_history == []

    def test_batch_reports_each_target(self, graph, jim, tom, ruby):
        results = graph.follow(jim, jim, tom, ruby, tom)

        assert [r.outcome for r in results] == [
            FollowOutcome.SELF_REFERENCE,
            FollowOutcome.CREATED,
            FollowOutcome.CREATED,
            FollowOutcome.ALREADY_RELATED,
        ]
        assert graph.query.followees_count(jim) == 2

    def test_follow_is_directed(self, graph, jim, tom):
        graph.follow(jim, tom)

        assert not graph.manager.follower_of(tom, jim)
        assert graph.follow(tom, jim)[0].outcome is FollowOutcome.CREATED
        assert graph.manager.follower_of(tom, jim)

    def test_history_entries_written_on_both_sides(self, graph, jim, tom):
        graph.follow(jim, tom)

        assert [e.ref for e in jim.follow_history] == [tom.ref]
        assert [e.ref for e in tom.followed_history] == [jim.ref]


class TestAuthorizationAtFollowTime:
    def test_followee_blocks_follower_type(self, graph, jim, ruby):
        graph.policy.set_authorization(ruby, Role.FOLLOWEE, "user")

        results = graph.follow(jim, ruby)

        assert results[0].outcome is FollowOutcome.DENIED
        assert _edge_counts(graph, jim, ruby) == (0, 0)
        assert jim.follow_history == []
        assert ruby.followed_history == []

    def test_follower_refuses_followee_type(self, graph, jim, tom, ruby):
        graph.policy.set_authorization(jim, Role.FOLLOWER, "group")

        outcomes = [r.outcome for r in graph.follow(jim, ruby, tom)]

        assert outcomes == [FollowOutcome.DENIED, FollowOutcome.CREATED]

    def test_later_block_does_not_sever_existing_relationship(self, graph, jim, ruby):
        graph.follow(jim, ruby)
        graph.policy.set_authorization(ruby, Role.FOLLOWEE, "user")

        assert graph.manager.follower_of(jim, ruby)
        assert graph.unfollow(jim, ruby)[0].outcome is UnfollowOutcome.REMOVED

    def test_unset_allows_follow_again(self, graph, jim, ruby):
        graph.policy.set_authorization(ruby, Role.FOLLOWEE, "user")
        graph.policy.unset_authorization(ruby, Role.FOLLOWEE, "User")

        assert graph.follow(jim, ruby)[0].outcome is FollowOutcome.CREATED


class TestUnfollow:
    def test_unfollow_removes_both_halves_and_keeps_history(self, graph, jim, tom):
        graph.follow(jim, tom)

        results = graph.unfollow(jim, tom)

        assert results[0].outcome is UnfollowOutcome.REMOVED
        assert _edge_counts(graph, jim, tom) == (0, 0)
        assert not graph.manager.follower_of(jim, tom)
        assert [e.ref for e in jim.follow_history] == [tom.ref]

    def test_unfollow_when_not_related_is_noop(self, graph, jim, tom):
        assert graph.unfollow(jim, tom)[0].outcome is UnfollowOutcome.NOT_RELATED
        assert graph.unfollow(jim, jim)[0].outcome is UnfollowOutcome.SELF_REFERENCE

    def test_unfollow_only_touches_the_given_pair(self, graph, jim, tom, ruby):
        graph.follow(jim, tom, ruby)
        graph.follow(tom, ruby)

        graph.unfollow(jim, ruby)

        assert graph.manager.follower_of(jim, tom)
        assert graph.manager.follower_of(tom, ruby)
        assert graph.query.followers_of(ruby) == [tom]

    def test_follow_again_after_unfollow_appends_history(self, graph, jim, tom):
        graph.follow(jim, tom)
        graph.unfollow(jim, tom)
        graph.follow(jim, tom)

        assert graph.manager.follower_of(jim, tom)
        assert [e.ref for e in jim.follow_history] == [tom.ref, tom.ref]


class TestRelatedAs:
    def test_symmetry(self, graph, jim, tom, bob, ruby):
        graph.follow(jim, tom, ruby)
        graph.follow(bob, jim)
        nodes = [jim, tom, bob, ruby]

        for a in nodes:
            for b in nodes:
                assert graph.manager.related_as(a, b, Direction.FOLLOWER) == graph.manager.related_as(
                    b, a, Direction.FOLLOWEE
                )

    def test_torn_followers_side_reads_as_not_related(self, graph, jim, tom):
        graph.store.followers(tom.ref).create("user", "jim")

        assert not graph.manager.follower_of(jim, tom)
        assert not graph.manager.followee_of(tom, jim)
        assert graph.manager.is_torn(jim, tom)

    def test_torn_followees_side_reads_as_not_related(self, graph, jim, tom):
        graph.store.followees(jim.ref).create("user", "tom")

        assert not graph.manager.follower_of(jim, tom)
        assert graph.manager.is_torn(jim, tom)

    def test_follow_refuses_to_build_on_torn_pair(self, graph, jim, tom):
        graph.store.followers(tom.ref).create("user", "jim")

        assert graph.follow(jim, tom)[0].outcome is FollowOutcome.TORN
        assert graph.store.followees(jim.ref).count_where() == 0
        assert jim.follow_history == []

    def test_unfollow_skips_torn_pair(self, graph, jim, tom):
        graph.store.followers(tom.ref).create("user", "jim")

        assert graph.unfollow(jim, tom)[0].outcome is UnfollowOutcome.NOT_RELATED
        assert graph.store.followers(tom.ref).count_where() == 1


class TestDualWriteFailures:
    @pytest.fixture
    def graph(self, memory_store, registry):
        return FollowGraph.build(memory_store, registry)

    def test_lost_race_is_reported_as_already_related(self, graph, jim, tom):
        graph.store.followers(tom.ref).create("user", "jim")
        graph.manager._halves = lambda follower, followee: (0, 0)

        results = graph.follow(jim, tom)

        assert results[0].outcome is FollowOutcome.ALREADY_RELATED
        assert graph.store.followees(jim.ref).count_where() == 0

    def test_second_write_failure_leaves_detectable_torn_state(self, graph, jim, tom, monkeypatch):
        original = InMemoryEdgeCollection.create

        def failing_create(self, peer_type, peer_id):
            if self.collection is Collection.FOLLOWEES:
                raise StoreError("disk full")
            return original(self, peer_type, peer_id)

        monkeypatch.setattr(InMemoryEdgeCollection, "create", failing_create)

        with pytest.raises(PartialWriteError) as excinfo:
            graph.follow(jim, tom)

        assert excinfo.value.operation == "follow"
        assert isinstance(excinfo.value.cause, StoreError)
        assert graph.store.followers(tom.ref).count_where() == 1
        assert graph.store.followees(jim.ref).count_where() == 0
        assert not graph.manager.follower_of(jim, tom)
        assert graph.manager.is_torn(jim, tom)

        monkeypatch.setattr(InMemoryEdgeCollection, "create", original)
        report = graph.manager.reconcile(tom)
        assert len(report.removed) == 1
        assert not graph.manager.is_torn(jim, tom)
        assert graph.follow(jim, tom)[0].outcome is FollowOutcome.CREATED

    def test_concurrent_follows_create_one_pair(self, graph, jim, tom):
        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(lambda _: graph.follow(jim, tom)[0].outcome, range(16)))

        assert outcomes.count(FollowOutcome.CREATED) == 1
        assert outcomes.count(FollowOutcome.ALREADY_RELATED) == 15
        assert _edge_counts(graph, jim, tom) == (1, 1)
