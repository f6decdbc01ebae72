import logging
import math
from dataclasses import dataclass, field

from app.config import settings
from app.models import Lecture
from app.services.chunking import chunk_segments
from app.services.store import ClassNotesStore

logger = logging.getLogger(__name__)

# Documents and typed notes are indexed as a single synthetic segment.
DOCUMENT_TEXT_LIMIT = 12000
DOCUMENT_SPAN_CAP_SEC = 300


@dataclass
class IndexResult:
    lecture_id: str
    chunk_ids: list[str] = field(default_factory=list)
    embedded: int = 0

    @property
    def pending(self) -> int:
        """Chunks still waiting for a vector (blank text or a failed embed)."""
        return len(self.chunk_ids) - self.embedded


class Indexer:
    """Chunks transcripts, persists the chunks and attaches embeddings.

    Chunks are written first and vectors attached afterwards, so an embedding
    outage leaves the lecture's chunks in place without vectors.  Those are
    invisible to retrieval until ``backfill`` fills them in.
    """

    def __init__(self, store: ClassNotesStore, embedder, max_chars: int | None = None) -> None:
        self.store = store
        self.embedder = embedder
        self.max_chars = max_chars if max_chars is not None else settings.chunk_max_chars

    async def index_lecture(
        self,
        lecture: Lecture,
        segments: list[dict],
        source: str = "transcript",
    ) -> IndexResult:
        chunks = chunk_segments(segments, self.max_chars)
        result = IndexResult(lecture_id=lecture.id)
        if not chunks:
            logger.info("Lecture %s: no transcript text to index", lecture.id)
            return result

        result.chunk_ids = await self.store.create_chunks(
            lecture.class_id, lecture.id, source, chunks
        )
        pairs = list(zip(result.chunk_ids, [c["text"] for c in chunks]))
        try:
            result.embedded = await self._embed_and_attach(pairs)
        except Exception as e:
            logger.warning(
                "Lecture %s: embedding failed, %d chunks left without vectors: %s",
                lecture.id,
                len(pairs),
                e,
            )
        logger.info(
            "Lecture %s: indexed %d %s chunks (%d embedded)",
            lecture.id,
            len(result.chunk_ids),
            source,
            result.embedded,
        )
        return result

    async def index_text(
        self, lecture: Lecture, text: str, source: str = "document"
    ) -> IndexResult:
        """Index free text (documents, typed notes) as one synthetic segment."""
        segment = {
            "start": 0,
            "end": min(DOCUMENT_SPAN_CAP_SEC, math.ceil(len(text) / 6)),
            "text": text[:DOCUMENT_TEXT_LIMIT],
        }
        return await self.index_lecture(lecture, [segment], source=source)

    async def backfill(self, class_id: str, limit: int | None = None) -> int:
        """Embed up to *limit* vector-less chunks of a class, newest first.

        Returns how many chunks received a vector.  If the batched call
        fails, chunks are retried one by one so a single bad item only
        costs itself.
        """
        if limit is None:
            limit = settings.backfill_limit
        chunks = await self.store.find_unembedded_chunks(class_id, limit)
        pairs = [(c.id, c.text) for c in chunks]
        if not pairs:
            return 0
        try:
            filled = await self._embed_and_attach(pairs)
        except Exception as e:
            logger.warning(
                "Class %s: batched backfill failed (%s); retrying per chunk", class_id, e
            )
            filled = 0
            for pair in pairs:
                try:
                    filled += await self._embed_and_attach([pair])
                except Exception as item_err:
                    logger.warning("Backfill skipped chunk %s: %s", pair[0], item_err)
        logger.info("Class %s: backfilled %d of %d chunks", class_id, filled, len(pairs))
        return filled

    async def _embed_and_attach(self, pairs: list[tuple[str, str]]) -> int:
        """Embed (chunk_id, text) pairs in one call and store the vectors.

        Blank texts are dropped before the call and never get a vector.
        """
        todo = [(chunk_id, text.strip()) for chunk_id, text in pairs if text and text.strip()]
        if not todo:
            return 0
        vectors = await self.embedder.embed([text for _, text in todo])
        # Vectors are matched to chunks by position, so a short or long reply
        # cannot be attached safely.
        if len(vectors) != len(todo):
            raise ValueError(
                f"embedding gateway returned {len(vectors)} vectors for {len(todo)} inputs"
            )
        attached = [
            (chunk_id, vec)
            for (chunk_id, _), vec in zip(todo, vectors)
            if vec and all(math.isfinite(x) for x in vec)
        ]
        await self.store.attach_vectors(attached)
        return len(attached)
