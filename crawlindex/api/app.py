"""FastAPI application factory for the search API."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..search.engine import SearchEngine
from ..storage.database import PageStore
from ..utils.config import Config
from .routes import router

logger = logging.getLogger(__name__)


def create_app(config: Config, store: Optional[PageStore] = None) -> FastAPI:
    """
    Build the API app.

    The store is opened in the lifespan unless one is passed in; a passed-in
    store is left open on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_store = store is None
        page_store = store or PageStore(config.database.path)
        if owns_store:
            await page_store.initialize()

        app.state.store = page_store
        app.state.engine = SearchEngine.from_store(
            page_store, mode=config.search.mode, default_limit=config.search.default_limit
        )
        logger.info(f"Search API ready ({app.state.engine.mode} search)",
                    extra={'extra_fields': {'search_mode': app.state.engine.mode}})

        yield

        logger.info("shutting down search API")
        if owns_store:
            await page_store.close()

    app = FastAPI(title="CrawlIndex Search API", lifespan=lifespan)
    # The static search page is served from a different origin
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"])
    app.include_router(router)
    return app
