from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.dependencies import get_indexer, get_store, get_viewer_id
from app.services.indexer import Indexer
from app.services.store import ClassNotesStore

router = APIRouter(prefix="/api", tags=["classes"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class ClassCreate(BaseModel):
    name: str
    sync_key: str | None = None
    sync_enabled: bool = False


class SyncRequest(BaseModel):
    sync_key: str | None = None


class BackfillRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


async def get_owned_class_or_404(store: ClassNotesStore, class_id: str, viewer_id: str):
    clazz = await store.get_owned_class(class_id, viewer_id)
    if not clazz:
        raise HTTPException(status_code=404, detail=f"Class {class_id} not found")
    return clazz


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.post("/classes")
async def create_class(
    body: ClassCreate,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> dict:
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name required")
    sync_key = (body.sync_key or "").strip() or None
    clazz = await store.create_class(
        viewer_id, name, sync_key=sync_key, sync_enabled=body.sync_enabled and bool(sync_key)
    )
    return asdict(clazz)


@router.get("/classes")
async def list_classes(
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> list[dict]:
    return [asdict(c) for c in await store.list_classes(viewer_id)]


@router.get("/classes/{class_id}")
async def get_class(
    class_id: str,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> dict:
    """Class details with its lectures, newest first."""
    clazz = await get_owned_class_or_404(store, class_id, viewer_id)
    lectures = await store.list_lectures(class_id)
    return {**asdict(clazz), "lectures": [asdict(lec) for lec in lectures]}


@router.post("/classes/{class_id}/sync")
async def set_sync_key(
    class_id: str,
    body: SyncRequest,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> dict:
    """Share this class's lectures under *sync_key* and enable sync."""
    sync_key = (body.sync_key or "").strip()
    if not sync_key:
        raise HTTPException(status_code=400, detail="sync_key required")
    await get_owned_class_or_404(store, class_id, viewer_id)
    clazz = await store.set_class_sync(class_id, sync_key)
    return {"ok": True, "class": asdict(clazz)}


@router.post("/classes/{class_id}/backfill")
async def backfill_embeddings(
    class_id: str,
    body: BackfillRequest | None = None,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
    indexer: Indexer = Depends(get_indexer),
) -> dict:
    """Embed chunks that were left without a vector by an earlier failure."""
    await get_owned_class_or_404(store, class_id, viewer_id)
    limit = body.limit if body else None
    filled = await indexer.backfill(class_id, limit)
    return {"class_id": class_id, "filled": filled}
