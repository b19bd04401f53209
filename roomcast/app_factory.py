import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomcast.db import Base, engine, apply_migrations
from roomcast.realtime import Realtime
from roomcast.web import router as web_router

logger = logging.getLogger(__name__)


def log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Log unhandled task errors instead of letting them take the process down."""
    exc = context.get("exception")
    logger.error("Unhandled error in event loop: %s", context.get("message"), exc_info=exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await apply_migrations(conn)
    asyncio.get_running_loop().set_exception_handler(log_loop_exception)
    app.state.realtime = Realtime()
    try:
        yield
    finally:
        await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(web_router)
    return app
