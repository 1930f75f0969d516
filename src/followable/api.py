from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from .errors import NodeNotFoundError, PartialWriteError, StoreError
from .graph import FollowGraph
from .models import Collection, Extreme, FollowableNode, RepairStrategy, Role
from .settings import settings


class NodeIn(BaseModel):
    type: str
    id: str


class FollowIn(BaseModel):
    follower: NodeIn
    followees: list[NodeIn] = Field(min_length=1)


class AuthorizationIn(BaseModel):
    role: Role
    types: list[str] = Field(min_length=1)
    unset: bool = False


class ReconcileIn(BaseModel):
    strategy: RepairStrategy = RepairStrategy.REMOVE


def _node_out(node: FollowableNode) -> dict:
    return {"type": node.type, "id": node.id}


@lru_cache(maxsize=1)
def _default_graph() -> FollowGraph:
    return FollowGraph.from_settings(settings)


def build_follow_router(graph: Optional[FollowGraph] = None, api_key: Optional[str] = None) -> APIRouter:
    r = APIRouter(prefix="/v1", tags=["follow"])
    expected_key = api_key if api_key is not None else settings.api_key

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        if not expected_key:
            return
        if (x_api_key or "") != expected_key:
            raise HTTPException(status_code=401, detail="invalid API key")

    def get_graph() -> FollowGraph:
        return graph if graph is not None else _default_graph()

    def resolve(g: FollowGraph, type_name: str, node_id: str) -> FollowableNode:
        try:
            return g.node(type_name, node_id)
        except NodeNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    def run_write(fn, *args):
        try:
            return fn(*args)
        except PartialWriteError as e:
            raise HTTPException(status_code=500, detail=str(e))
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))

    @r.post("/follow")
    def follow(payload: FollowIn, g: FollowGraph = Depends(get_graph), _auth: None = Depends(require_api_key)):
        follower = resolve(g, payload.follower.type, payload.follower.id)
        followees = [resolve(g, n.type, n.id) for n in payload.followees]
        results = run_write(g.follow, follower, *followees)
        return {"results": [{"target": str(res.target), "outcome": res.outcome.value} for res in results]}

    @r.post("/unfollow")
    def unfollow(payload: FollowIn, g: FollowGraph = Depends(get_graph), _auth: None = Depends(require_api_key)):
        follower = resolve(g, payload.follower.type, payload.follower.id)
        followees = [resolve(g, n.type, n.id) for n in payload.followees]
        results = run_write(g.unfollow, follower, *followees)
        return {"results": [{"target": str(res.target), "outcome": res.outcome.value} for res in results]}

    @r.get("/nodes/{type_name}/{node_id}/followers")
    def followers(type_name: str, node_id: str, by_type: str | None = None, g: FollowGraph = Depends(get_graph)):
        node = resolve(g, type_name, node_id)
        try:
            nodes = g.query.followers_of(node, by_type)
        except NodeNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"count": len(nodes), "nodes": [_node_out(n) for n in nodes]}

    @r.get("/nodes/{type_name}/{node_id}/followees")
    def followees(type_name: str, node_id: str, by_type: str | None = None, g: FollowGraph = Depends(get_graph)):
        node = resolve(g, type_name, node_id)
        try:
            nodes = g.query.followees_of(node, by_type)
        except NodeNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"count": len(nodes), "nodes": [_node_out(n) for n in nodes]}

    @r.get("/nodes/{type_name}/{node_id}/counts")
    def counts(type_name: str, node_id: str, by_type: str | None = None, g: FollowGraph = Depends(get_graph)):
        node = resolve(g, type_name, node_id)
        return {
            "followers": g.query.followers_count(node, by_type),
            "followees": g.query.followees_count(node, by_type),
        }

    @r.get("/nodes/{type_name}/{node_id}/history")
    def history(type_name: str, node_id: str, g: FollowGraph = Depends(get_graph)):
        node = resolve(g, type_name, node_id)
        try:
            follow_hist = g.query.follow_history_of(node)
            followed_hist = g.query.followed_history_of(node)
        except NodeNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {
            "follow": [_node_out(n) for n in follow_hist],
            "followed": [_node_out(n) for n in followed_hist],
        }

    @r.post("/nodes/{type_name}/{node_id}/authorization")
    def authorization(
        type_name: str,
        node_id: str,
        payload: AuthorizationIn,
        g: FollowGraph = Depends(get_graph),
        _auth: None = Depends(require_api_key),
    ):
        node = resolve(g, type_name, node_id)
        fn = g.policy.unset_authorization if payload.unset else g.policy.set_authorization
        try:
            blocked = fn(node, payload.role, *payload.types)
        except NodeNotFoundError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {"role": payload.role.value, "blocked": sorted(blocked)}

    @r.post("/nodes/{type_name}/{node_id}/reconcile")
    def reconcile(
        type_name: str,
        node_id: str,
        payload: ReconcileIn,
        g: FollowGraph = Depends(get_graph),
        _auth: None = Depends(require_api_key),
    ):
        node = resolve(g, type_name, node_id)
        report = run_write(g.manager.reconcile, node, payload.strategy)
        return {
            "node": str(report.node),
            "strategy": report.strategy.value,
            "checked": report.checked,
            "removed": len(report.removed),
            "completed": len(report.completed),
            "deduplicated": len(report.deduplicated),
        }

    @r.get("/rank/{type_name}")
    def rank(
        type_name: str,
        role: Collection = Collection.FOLLOWERS,
        extreme: Extreme = Extreme.MAX,
        by_type: str | None = None,
        g: FollowGraph = Depends(get_graph),
    ):
        try:
            nodes = g.aggregation.rank_nodes(type_name, role, extreme, by_type)
        except NodeNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"role": role.value, "extreme": extreme.value, "nodes": [_node_out(n) for n in nodes]}

    return r


def create_app(graph: Optional[FollowGraph] = None) -> FastAPI:
    app = FastAPI(title="followable", version="0.1.0")

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(build_follow_router(graph))
    return app
