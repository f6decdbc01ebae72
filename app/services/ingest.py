import logging
import math

from app.models import ClassRecord, Lecture
from app.services.indexer import Indexer, IndexResult
from app.services.store import ClassNotesStore
from app.services.summary import SummaryService, summary_basis

logger = logging.getLogger(__name__)


def effective_sync_key(clazz: ClassRecord) -> str | None:
    """The key new lectures in *clazz* are shared under, if sync is on."""
    return clazz.sync_key if clazz.sync_enabled else None


def stitch_parts(parts: list[dict]) -> tuple[str, list[dict], int]:
    """Put separately transcribed recorder parts onto one timeline.

    Each part is ``{"chunk_index", "text", "duration", "segments"}`` with
    segment times local to the part.  Parts are ordered by ``chunk_index``
    and each is shifted by the whole seconds recorded before it.

    Returns ``(transcript_text, segments, total_seconds)``.
    """
    ordered = sorted(parts, key=lambda p: p.get("chunk_index", 0))
    offset = 0
    texts: list[str] = []
    segments: list[dict] = []

    for part in ordered:
        duration = max(0, math.floor(part.get("duration") or 0))
        text = (part.get("text") or "").strip()
        if text:
            texts.append(text)
        for seg in part.get("segments") or []:
            seg_text = str(seg.get("text") or "").strip()
            if not seg_text:
                continue
            start = max(0, math.floor((seg.get("start") or 0) + offset))
            end = max(start, math.floor((seg.get("end") or 0) + offset))
            segments.append({"start": start, "end": end, "text": seg_text})
        offset += duration

    return " ".join(texts), segments, offset


class IngestService:
    """Creates lectures from finished transcripts or typed notes and indexes them."""

    def __init__(
        self,
        store: ClassNotesStore,
        indexer: Indexer,
        summaries: SummaryService | None = None,
    ) -> None:
        self.store = store
        self.indexer = indexer
        self.summaries = summaries

    async def ingest_text(
        self,
        clazz: ClassRecord,
        user_id: str,
        text: str,
        *,
        descriptor: str | None = None,
        original_name: str = "Manual Text",
    ) -> tuple[Lecture, IndexResult]:
        body = text.strip()
        lecture = await self.store.create_lecture(
            clazz.id,
            user_id,
            original_name=original_name,
            descriptor=descriptor,
            kind="NOTES",
            mime="text/plain",
            status="READY",
            sync_key=effective_sync_key(clazz),
            transcript=body,
            text_content=body,
        )
        result = await self.indexer.index_text(lecture, body, source="notes")
        return lecture, result

    async def finalize_recording(
        self,
        clazz: ClassRecord,
        user_id: str,
        parts: list[dict],
        *,
        descriptor: str | None = None,
        filename: str | None = None,
    ) -> tuple[Lecture, IndexResult]:
        transcript, segments, total_sec = stitch_parts(parts)
        lecture = await self.store.create_lecture(
            clazz.id,
            user_id,
            original_name=filename,
            descriptor=descriptor,
            kind="LECTURE",
            mime="audio/webm",
            status="PROCESSING",
            sync_key=effective_sync_key(clazz),
            transcript=transcript,
            duration_sec=total_sec,
            segments=segments,
        )
        try:
            result = await self.indexer.index_lecture(lecture, segments, source="transcript")
        except Exception:
            await self.store.update_lecture(lecture.id, status="FAILED")
            raise

        summary, terms = await self._summarize(lecture.id, summary_basis(transcript, None))
        lecture = await self.store.update_lecture(
            lecture.id, status="READY", summary=summary, key_terms=terms
        )
        return lecture, result

    async def _summarize(self, lecture_id: str, basis: str) -> tuple[str, list[str]]:
        """Best-effort summary and key terms; failures leave them empty."""
        if self.summaries is None or not basis.strip():
            return "", []
        summary = ""
        terms: list[str] = []
        try:
            summary = await self.summaries.summarize(basis)
        except Exception as e:
            logger.warning("Lecture %s: summary failed: %s", lecture_id, e)
        try:
            terms = await self.summaries.key_terms(basis)
        except Exception as e:
            logger.warning("Lecture %s: key terms failed: %s", lecture_id, e)
        return summary, terms
