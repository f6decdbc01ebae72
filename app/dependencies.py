"""FastAPI dependencies: a per-request store, the gateway clients and the viewer.

Authentication lives in front of this service; requests arrive with the
authenticated user's id in the ``X-User-Id`` header.
"""

from typing import AsyncIterator

from fastapi import Depends, Header, HTTPException

from app.clients import EmbeddingClient, GroqClient
from app.database import get_async_conn
from app.services.chat import ChatService
from app.services.composer import AnswerComposer
from app.services.indexer import Indexer
from app.services.ingest import IngestService
from app.services.store import ClassNotesStore
from app.services.summary import SummaryService


async def get_store() -> AsyncIterator[ClassNotesStore]:
    conn = await get_async_conn()
    try:
        yield ClassNotesStore(conn)
    finally:
        await conn.close()


async def get_embedder() -> AsyncIterator[EmbeddingClient]:
    client = EmbeddingClient()
    try:
        yield client
    finally:
        await client.close()


async def get_groq() -> AsyncIterator[GroqClient]:
    client = GroqClient()
    try:
        yield client
    finally:
        await client.close()


def get_viewer_id(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_indexer(
    store: ClassNotesStore = Depends(get_store),
    embedder=Depends(get_embedder),
) -> Indexer:
    return Indexer(store, embedder)


def get_ingest_service(
    store: ClassNotesStore = Depends(get_store),
    indexer: Indexer = Depends(get_indexer),
    groq=Depends(get_groq),
) -> IngestService:
    return IngestService(store, indexer, SummaryService(groq))


def get_chat_service(
    store: ClassNotesStore = Depends(get_store),
    embedder=Depends(get_embedder),
    groq=Depends(get_groq),
) -> ChatService:
    return ChatService(store, embedder, AnswerComposer(groq))
