from __future__ import annotations

import logging

import uvicorn
from pydantic import Field

from .api import create_app
from .graph import FollowGraph
from .settings import FollowableSettings


class ServerSettings(FollowableSettings):
    bind_host: str = "127.0.0.1"
    bind_port: int = Field(default=8089, ge=1, le=65535)


def main() -> None:
    cfg = ServerSettings()
    logging.basicConfig(level=cfg.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    graph = FollowGraph.from_settings(cfg)
    app = create_app(graph)

    config = uvicorn.Config(
        app,
        host=cfg.bind_host,
        port=cfg.bind_port,
        log_level=(cfg.log_level or "info").lower(),
    )
    server = uvicorn.Server(config)

    try:
        server.run()
    finally:
        graph.close()


if __name__ == "__main__":
    main()
