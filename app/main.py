from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger

from app.ai.factory import close_orchestrator
from app.api.ai_chat import router as ai_chat_router
from app.config.settings import settings
from app.core.logger import setup_logger
from app.db.session import init_db


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Configure logging and tables on startup, close agent connections on shutdown."""
    setup_logger(level=settings.log_level, log_file=settings.log_file)
    init_db()
    yield
    await close_orchestrator()
    logger.info("Agent client closed")


app = FastAPI(title="GymPal AI", lifespan=lifespan)

app.include_router(ai_chat_router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.debug(f"Request: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.debug(f"Response: {response.status_code} for {request.method} {request.url.path}")
    return response
