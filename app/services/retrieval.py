import logging
from dataclasses import dataclass
from typing import Iterable

from app.config import settings
from app.models import Chunk
from app.services.similarity import cosine
from app.services.store import ClassNotesStore

logger = logging.getLogger(__name__)


@dataclass
class ScoredChunk:
    chunk: Chunk
    score: float


def rank_chunks(
    query_vector: list[float],
    chunks: Iterable[Chunk],
    k: int,
    min_score: float,
) -> list[ScoredChunk]:
    """Score *chunks* against the query and keep the best *k* above the floor.

    Chunks without a vector are skipped.  The floor is strict: a score equal
    to *min_score* is dropped.  Ties keep their input order.
    """
    scored = [
        ScoredChunk(chunk=ch, score=cosine(query_vector, ch.vector))
        for ch in chunks
        if ch.vector
    ]
    kept = [s for s in scored if s.score > min_score]
    kept.sort(key=lambda s: s.score, reverse=True)
    return kept[:k]


class Retriever:
    """Brute-force cosine search over the chunks of a set of lectures.

    Datasets are per-class and small (a few thousand chunks), so every
    candidate is scored; ``cap`` bounds how many of the newest chunks are
    considered at all.
    """

    def __init__(
        self,
        store: ClassNotesStore,
        k: int | None = None,
        min_score: float | None = None,
        cap: int | None = None,
    ) -> None:
        self.store = store
        self.k = k if k is not None else settings.top_k
        self.min_score = min_score if min_score is not None else settings.min_score
        self.cap = cap if cap is not None else settings.retrieval_cap

    async def retrieve(
        self, query_vector: list[float], lecture_ids: Iterable[str]
    ) -> list[ScoredChunk]:
        ids = sorted(set(lecture_ids))
        if not ids:
            return []
        chunks = await self.store.find_chunks_for_lectures(ids, self.cap)
        ranked = rank_chunks(query_vector, chunks, self.k, self.min_score)
        logger.debug(
            "Retrieved %d of %d candidate chunks from %d lectures",
            len(ranked),
            len(chunks),
            len(ids),
        )
        return ranked
