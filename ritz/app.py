"""
FastAPI application serving the repository pages.

Handlers are plain ``def`` functions: FastAPI runs each one on its worker
thread pool, so opening the repository, assembling commit views and rendering
happen as one blocking unit per request. Each request opens its own
``Repository``.
"""

from __future__ import annotations
import logging
from typing import List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from . import __version__, pages
from .commitinfo import assemble
from .config import Config
from .errors import NotFound, ResourceUnavailable
from .git import CommitRef, Reference, Repository, find_repositories

logger = logging.getLogger(__name__)


def create_app(config: Optional[Config] = None) -> FastAPI:
    config = config or Config.load()
    app = FastAPI(title="ritz", version=__version__, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config

    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound) -> HTMLResponse:
        return HTMLResponse(pages.error_page(404, str(exc)), status_code=404)

    @app.exception_handler(ResourceUnavailable)
    async def unavailable(request: Request, exc: ResourceUnavailable) -> HTMLResponse:
        logger.error("%s failed: %s", request.url.path, exc)
        return HTMLResponse(pages.error_page(500, "The page could not be generated."), status_code=500)

    @app.get("/", response_class=HTMLResponse)
    def index() -> str:
        return pages.index_page(find_repositories(config.dir))

    @app.get("/{repo}", response_class=HTMLResponse)
    @app.get("/{repo}/log", response_class=HTMLResponse)
    def log(repo: str) -> str:
        with Repository.open_in(config.dir, repo) as r:
            ids = r.walk(r.head(), limit=config.log_limit)
            views = [assemble(r, oid, config.context_lines) for oid in ids]
        return pages.log_page(repo, views)

    @app.get("/{repo}/commit/{oid}", response_class=HTMLResponse)
    def commit(repo: str, oid: str) -> str:
        with Repository.open_in(config.dir, repo) as r:
            view = assemble(r, oid, config.context_lines)
        return pages.commit_page(repo, view)

    @app.get("/{repo}/refs", response_class=HTMLResponse)
    def refs(repo: str) -> str:
        with Repository.open_in(config.dir, repo) as r:
            rows: List[Tuple[Reference, CommitRef]] = [
                (ref, r.resolve_commit(ref.target)) for ref in r.references()
            ]
        return pages.refs_page(repo, rows)

    @app.get("/{repo}/tree", response_class=HTMLResponse)
    @app.get("/{repo}/tree/{path:path}", response_class=HTMLResponse)
    def tree(repo: str, path: str = "") -> str:
        with Repository.open_in(config.dir, repo) as r:
            head = r.head()
            if r.object_kind(head, path) == "blob":
                return pages.blob_page(repo, r.read_blob(head, path))
            return pages.tree_page(repo, path, r.list_tree(head, path))

    return app
