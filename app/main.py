import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import init_db
from app.errors import ClassNotesError
from app.routes import chat, classes, lectures

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Create SQLite tables on startup. Nothing to tear down on shutdown."""
    await init_db()
    yield


app = FastAPI(
    title="class-notes",
    description="Lecture transcripts, summaries and grounded class chat with citations",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(classes.router)
app.include_router(lectures.router)
app.include_router(chat.router)


@app.exception_handler(ClassNotesError)
async def handle_service_error(_request: Request, exc: ClassNotesError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok"}
