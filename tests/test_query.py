import pytest

from followable import NodeNotFoundError


def test_jim_tom_ruby_scenario(graph, jim, tom, ruby):
    graph.follow(jim, tom)
    assert graph.query.is_follower_of(jim, tom)
    assert graph.query.is_followee_of(tom, jim)
    assert graph.query.followers_of(tom) == [jim]
    assert graph.query.followees_of(jim) == [tom]
    assert graph.query.followees_count(jim) == 1
    assert graph.query.follow_history_of(jim) == [tom]
    assert graph.query.followed_history_of(tom) == [jim]

    graph.follow(jim, ruby)
    assert graph.query.followees_count(jim) == 2
    assert graph.query.followees_of(jim, by_type="group") == [ruby]
    assert graph.query.followees_count(jim, by_type="User") == 1

    graph.unfollow(jim, tom)
    assert not graph.query.is_follower_of(jim, tom)
    assert graph.query.followers_of(tom) == []
    assert graph.query.follow_history_of(jim) == [tom, ruby]
    assert graph.aggregation.with_max_followees("User") == [jim]


def test_common_followees(graph, jim, tom, bob, ruby):
    graph.follow(jim, ruby, bob)
    graph.follow(tom, bob, ruby)

    assert graph.query.common_followees(jim, tom) == [ruby, bob]
    assert graph.query.has_common_followees(jim, tom)
    assert not graph.query.has_common_followees(jim, ruby)


def test_common_followers(graph, jim, tom, ruby):
    graph.follow(jim, tom, ruby)

    assert graph.query.common_followers(tom, ruby) == [jim]
    assert graph.query.has_common_followers(ruby, tom)
    assert not graph.query.has_common_followers(jim, tom)


def test_no_common_relationships_between_direct_pair(graph, jim, tom):
    graph.follow(jim, tom)

    assert not graph.query.has_common_followees(jim, tom)
    assert not graph.query.has_common_followers(tom, jim)


def test_followers_of_missing_peer_raises(graph, users, jim, tom):
    graph.follow(jim, tom)
    users.delete("jim")

    with pytest.raises(NodeNotFoundError):
        graph.query.followers_of(tom)
    assert graph.query.followers_count(tom) == 1


def test_followers_filtered_by_type(graph, jim, ruby, groups):
    other = groups.add("python")
    graph.follow(jim, ruby)
    graph.follow(other, ruby)

    assert graph.query.followers_of(ruby, by_type="Group") == [other]
    assert graph.query.followers_count(ruby, by_type="user") == 1
    assert graph.query.followers_count(ruby) == 2


def test_torn_half_is_hidden_from_lists_and_counts(graph, jim, tom):
    graph.store.followers(tom.ref).create("User", "jim")

    assert not graph.query.is_follower_of(jim, tom)
    assert graph.query.followers_of(tom) == []
    assert graph.query.followers_count(tom) == 0
    assert graph.query.followees_of(jim) == []
    assert graph.query.followees_count(jim) == 0
    assert graph.store.followers(tom.ref).count_where() == 1


def test_torn_followees_half_is_hidden_from_common_followees(graph, jim, tom, ruby):
    graph.follow(jim, ruby)
    graph.store.followees(tom.ref).create("Group", "ruby")

    assert graph.query.followees_of(tom) == []
    assert not graph.query.has_common_followees(jim, tom)
    assert graph.query.followers_of(ruby) == [jim]
