import pytest

from followable import FollowGraph
from followable.settings import FollowableSettings
from followable.store import InMemoryEdgeStore, SQLiteEdgeStore, build_edge_store


def test_defaults(monkeypatch):
    monkeypatch.delenv("FOLLOWABLE_BACKEND", raising=False)
    cfg = FollowableSettings()

    assert cfg.backend == "sqlite"
    assert cfg.node_types == ["User", "Group"]
    assert cfg.strict_authorization is False
    assert cfg.api_key is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FOLLOWABLE_BACKEND", "memory")
    monkeypatch.setenv("FOLLOWABLE_NODE_TYPES", '["Person", "page"]')
    monkeypatch.setenv("FOLLOWABLE_STRICT_AUTHORIZATION", "true")
    monkeypatch.setenv("FOLLOWABLE_LOCK_STRIPES", "8")

    cfg = FollowableSettings()

    assert cfg.backend == "memory"
    assert cfg.node_types == ["Person", "page"]
    assert cfg.strict_authorization is True
    assert cfg.lock_stripes == 8


def test_build_edge_store():
    assert isinstance(build_edge_store(FollowableSettings(backend="memory")), InMemoryEdgeStore)
    with pytest.raises(ValueError):
        build_edge_store(FollowableSettings(backend="cassandra"))


def test_from_settings_registers_node_types(tmp_path):
    cfg = FollowableSettings(backend="sqlite", sqlite_path=str(tmp_path / "g.db"), node_types=["person", "page"])

    graph = FollowGraph.from_settings(cfg)
    try:
        assert isinstance(graph.store, SQLiteEdgeStore)
        assert graph.registry.types() == ["Person", "Page"]

        alice = graph.add_node("person", "alice")
        home = graph.add_node("page", "home")
        assert graph.follow(alice, home)[0].created
        assert graph.query.followers_of(graph.node("Page", "home")) == [alice]
    finally:
        graph.close()


def test_from_settings_memory_backend_is_strict_when_asked():
    cfg = FollowableSettings(backend="memory", strict_authorization=True, node_types=["User"])

    graph = FollowGraph.from_settings(cfg)

    assert graph.policy.strict is True
    assert isinstance(graph.store, InMemoryEdgeStore)
