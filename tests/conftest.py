import pytest

from followable import FollowGraph, InMemoryNodeRepository, NodeTypeRegistry
from followable.store import InMemoryEdgeStore, SQLiteEdgeStore


@pytest.fixture
def users():
    return InMemoryNodeRepository("user")


@pytest.fixture
def groups():
    return InMemoryNodeRepository("group")


@pytest.fixture
def registry(users, groups):
    reg = NodeTypeRegistry()
    reg.register("user", users)
    reg.register("group", groups)
    return reg


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        s = InMemoryEdgeStore()
    else:
        s = SQLiteEdgeStore(str(tmp_path / "edges.db"))
    s.connect()
    yield s
    s.close()


@pytest.fixture
def memory_store():
    return InMemoryEdgeStore()


@pytest.fixture
def graph(store, registry):
    return FollowGraph.build(store, registry)


@pytest.fixture
def jim(users):
    return users.add("jim")


@pytest.fixture
def tom(users):
    return users.add("tom")


@pytest.fixture
def bob(users):
    return users.add("bob")


@pytest.fixture
def ruby(groups):
    return groups.add("ruby")
