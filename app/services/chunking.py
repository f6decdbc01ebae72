"""Groups time-stamped transcript segments into retrieval-sized chunks."""

CHUNK_MAX_CHARS = 800


def chunk_segments(segments: list[dict], max_chars: int = CHUNK_MAX_CHARS) -> list[dict]:
    """Merge consecutive segments into chunks of at most *max_chars* characters.

    *segments* are ``{"start": float, "end": float, "text": str}`` dicts in
    time order (stitched recordings must already be offset onto one
    timeline).  Returns::

        [{"text": str, "start": float, "end": float}, ...]

    A chunk spans from the start of its first segment to the end of its last.
    The limit is checked against the would-be buffer (``buf + " " + text``),
    so a chunk only exceeds *max_chars* when a single segment does; that
    segment becomes its own chunk and is never split.  Blank segments are
    skipped.
    """
    chunks: list[dict] = []
    if not segments:
        return chunks

    buf = ""
    start = segments[0]["start"]
    end = segments[0]["end"]

    for seg in segments:
        text = (seg.get("text") or "").strip()
        if not text:
            continue
        if buf and len(buf + " " + text) > max_chars:
            chunks.append({"text": buf.strip(), "start": start, "end": end})
            buf = text
            start, end = seg["start"], seg["end"]
        else:
            buf = f"{buf} {text}" if buf else text
            end = seg["end"]

    if buf:
        chunks.append({"text": buf.strip(), "start": start, "end": end})
    return chunks
