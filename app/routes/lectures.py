from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, StrictBool

from app.dependencies import (
    get_groq,
    get_ingest_service,
    get_store,
    get_viewer_id,
)
from app.routes.classes import get_owned_class_or_404
from app.services.access import AccessResolver
from app.services.ingest import IngestService
from app.services.store import ClassNotesStore
from app.services.summary import SummaryService, summary_basis

router = APIRouter(prefix="/api", tags=["lectures"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class TextUpload(BaseModel):
    text: str
    descriptor: str | None = None
    original_name: str | None = None


class PartSegment(BaseModel):
    start: float = 0
    end: float = 0
    text: str = ""


class RecordingPart(BaseModel):
    chunk_index: int
    text: str = ""
    duration: float = 0  # seconds
    segments: list[PartSegment] = Field(default_factory=list)  # local to the part


class FinalizeRequest(BaseModel):
    parts: list[RecordingPart] = Field(default_factory=list)
    descriptor: str | None = None
    filename: str | None = None


class LectureUpdate(BaseModel):
    descriptor: str | None = None
    kind: str | None = None
    include_in_memory: bool | None = None


class PreferenceUpdate(BaseModel):
    include_in_ai_summary: StrictBool | None = None


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


async def _get_owned_lecture_or_404(store: ClassNotesStore, lecture_id: str, viewer_id: str):
    lecture = await store.get_owned_lecture(lecture_id, viewer_id)
    if not lecture:
        raise HTTPException(status_code=404, detail=f"Lecture {lecture_id} not found")
    return lecture


async def _ensure_visible(store: ClassNotesStore, lecture_id: str, viewer_id: str) -> None:
    if not await AccessResolver(store).can_access(viewer_id, lecture_id):
        raise HTTPException(status_code=404, detail="Not found or not accessible")


# ------------------------------------------------------------------
# Ingestion
# ------------------------------------------------------------------


@router.post("/classes/{class_id}/lectures/text")
async def upload_text(
    class_id: str,
    body: TextUpload,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
    ingest: IngestService = Depends(get_ingest_service),
) -> dict:
    """Add typed notes to a class and index them for chat."""
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="no manual text")
    clazz = await get_owned_class_or_404(store, class_id, viewer_id)
    lecture, result = await ingest.ingest_text(
        clazz,
        viewer_id,
        body.text,
        descriptor=body.descriptor,
        original_name=body.original_name or "Manual Text",
    )
    return {
        "lecture_id": lecture.id,
        "status": lecture.status,
        "chunks": len(result.chunk_ids),
        "embedded": result.embedded,
    }


@router.post("/classes/{class_id}/record/finalize")
async def finalize_recording(
    class_id: str,
    body: FinalizeRequest,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
    ingest: IngestService = Depends(get_ingest_service),
) -> dict:
    """Stitch transcribed recorder parts into one lecture, index and summarize it."""
    if not body.parts:
        raise HTTPException(status_code=400, detail="no parts")
    clazz = await get_owned_class_or_404(store, class_id, viewer_id)
    lecture, result = await ingest.finalize_recording(
        clazz,
        viewer_id,
        [p.model_dump() for p in body.parts],
        descriptor=body.descriptor,
        filename=body.filename,
    )
    return {
        "ok": True,
        "lecture_id": lecture.id,
        "status": lecture.status,
        "duration_sec": lecture.duration_sec,
        "chunks": len(result.chunk_ids),
        "embedded": result.embedded,
    }


# ------------------------------------------------------------------
# Owner actions
# ------------------------------------------------------------------


@router.patch("/lectures/{lecture_id}")
async def update_lecture(
    lecture_id: str,
    body: LectureUpdate,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> dict:
    await _get_owned_lecture_or_404(store, lecture_id, viewer_id)
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="no changes")
    lecture = await store.update_lecture(lecture_id, **changes)
    return asdict(lecture)


@router.delete("/lectures/{lecture_id}")
async def delete_lecture(
    lecture_id: str,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> dict:
    """Delete a lecture and its chunks. Deleting a missing lecture is a no-op."""
    lecture = await store.get_owned_lecture(lecture_id, viewer_id)
    if lecture:
        await store.delete_lecture(lecture_id)
    return {"ok": True}


@router.post("/lectures/{lecture_id}/resummarize")
async def resummarize(
    lecture_id: str,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
    groq=Depends(get_groq),
) -> dict:
    lecture = await _get_owned_lecture_or_404(store, lecture_id, viewer_id)
    basis = summary_basis(lecture.transcript, lecture.text_content)
    if not basis.strip():
        raise HTTPException(
            status_code=400, detail="No source text available to summarize"
        )
    summary = await SummaryService(groq).summarize(basis)
    await store.update_lecture(lecture_id, summary=summary)
    return {"lecture_id": lecture_id, "summary": summary}


@router.get("/lectures/{lecture_id}/chunks")
async def list_chunks(
    lecture_id: str,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> list[dict]:
    """Inspect a lecture's chunks, including ones still waiting for a vector."""
    await _get_owned_lecture_or_404(store, lecture_id, viewer_id)
    return [
        {
            "id": ch.id,
            "source": ch.source,
            "start_sec": ch.start_sec,
            "end_sec": ch.end_sec,
            "text": ch.text,
            "has_vector": ch.vector is not None,
        }
        for ch in await store.list_chunks(lecture_id)
    ]


# ------------------------------------------------------------------
# Viewer preference
# ------------------------------------------------------------------


@router.get("/lectures/{lecture_id}/preference")
async def get_preference(
    lecture_id: str,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> dict:
    """The viewer's flag for this lecture; shown as included when never set."""
    await _ensure_visible(store, lecture_id, viewer_id)
    pref = await store.get_pref(lecture_id, viewer_id)
    return {"include_in_ai_summary": True if pref is None else pref}


@router.patch("/lectures/{lecture_id}/preference")
async def set_preference(
    lecture_id: str,
    body: PreferenceUpdate,
    viewer_id: str = Depends(get_viewer_id),
    store: ClassNotesStore = Depends(get_store),
) -> dict:
    if body.include_in_ai_summary is None:
        raise HTTPException(
            status_code=400, detail="include_in_ai_summary boolean required"
        )
    await _ensure_visible(store, lecture_id, viewer_id)
    saved = await store.upsert_pref(lecture_id, viewer_id, body.include_in_ai_summary)
    return {"include_in_ai_summary": saved}
