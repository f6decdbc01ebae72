import re
from dataclasses import dataclass, field

from app.config import settings
from app.models import ChatMessage, Citation, Span
from app.services.retrieval import ScoredChunk

REFUSAL = "I don't know based on the provided class materials."

SYSTEM_PROMPT = (
    "You are a tutor for the class \"{class_name}\". "
    "Answer ONLY from the numbered CONTEXT items supplied with the question; "
    "do not use outside knowledge. "
    "If the answer is not supported by the context, reply exactly: \"{refusal}\" "
    "Cite every claim with the bracketed number of the context item it came "
    "from, like [#1] or [#2][#5]. Be concise."
)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def clip_preview(text: str, limit: int | None = None) -> str:
    """Collapse whitespace and cut to *limit* characters with an ellipsis."""
    if limit is None:
        limit = settings.preview_chars
    if limit <= 0:
        return ""
    flat = re.sub(r"\s+", " ", text or "").strip()
    if len(flat) <= limit:
        return flat
    return flat[: limit - 1].rstrip() + "…"


def _format_span(start: float | None, end: float | None) -> str | None:
    if start is None or end is None:
        return None
    return f"{start:.0f}s–{end:.0f}s"


def _format_context(chunks: list[ScoredChunk], names: dict[str, str]) -> str:
    """Number each chunk for the prompt: header line, then the text."""
    entries = []
    for i, sc in enumerate(chunks, start=1):
        ch = sc.chunk
        header = [f"[#{i}]", f"source: {ch.source}"]
        name = names.get(ch.lecture_id)
        if name:
            header.append(f"lecture: {name}")
        span = _format_span(ch.start_sec, ch.end_sec)
        if span:
            header.append(span)
        header.append(f"score {sc.score:.3f}")
        entries.append(" | ".join(header) + "\n" + ch.text)
    return "\n\n".join(entries)


def _format_history(history: list[ChatMessage], tail: int) -> str:
    lines = []
    for msg in history[-tail:] if tail > 0 else []:
        speaker = "User" if msg.role == "user" else "Assistant"
        lines.append(f"{speaker}: {msg.content}")
    return "\n".join(lines)


def build_citations(
    chunks: list[ScoredChunk], names: dict[str, str] | None = None
) -> list[Citation]:
    """One citation per chunk, same order, numbered like the prompt."""
    names = names or {}
    citations = []
    for i, sc in enumerate(chunks, start=1):
        ch = sc.chunk
        span = None
        if ch.start_sec is not None and ch.end_sec is not None:
            span = Span(start_sec=ch.start_sec, end_sec=ch.end_sec)
        citations.append(
            Citation(
                idx=i,
                lecture_id=ch.lecture_id,
                source=ch.source,
                preview=clip_preview(ch.text),
                score=sc.score,
                span=span,
                original_name=names.get(ch.lecture_id),
            )
        )
    return citations


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class ComposedAnswer:
    answer: str
    citations: list[Citation] = field(default_factory=list)


class AnswerComposer:
    """Builds the grounded prompt and makes the single completion call."""

    def __init__(
        self,
        completion,
        temperature: float | None = None,
        history_tail: int | None = None,
    ) -> None:
        self.completion = completion
        self.temperature = (
            temperature if temperature is not None else settings.chat_temperature
        )
        self.history_tail = (
            history_tail if history_tail is not None else settings.history_tail
        )

    def build_prompts(
        self,
        class_name: str,
        chunks: list[ScoredChunk],
        history: list[ChatMessage],
        query: str,
        names: dict[str, str] | None = None,
    ) -> tuple[str, str]:
        system = SYSTEM_PROMPT.format(class_name=class_name, refusal=REFUSAL)
        history_block = _format_history(history, self.history_tail)
        user = (
            f"Conversation so far:\n{history_block or '(none)'}\n\n"
            f"QUESTION:\n{query}\n\n"
            f"CONTEXT:\n{_format_context(chunks, names or {})}"
        )
        return system, user

    async def compose(
        self,
        class_name: str,
        chunks: list[ScoredChunk],
        history: list[ChatMessage],
        query: str,
        names: dict[str, str] | None = None,
    ) -> ComposedAnswer:
        system, user = self.build_prompts(class_name, chunks, history, query, names)
        text = await self.completion.complete(system, user, self.temperature)
        answer = text if text and text.strip() else REFUSAL
        return ComposedAnswer(answer=answer, citations=build_citations(chunks, names))
