from app.clients import GroqClient

SUMMARY_BASIS_LIMIT = 12000
KEY_TERMS_BASIS_LIMIT = 8000
MAX_KEY_TERMS = 8

# ---------------------------------------------------------------------------
# JSON Schemas (Groq strict mode)
# ---------------------------------------------------------------------------

KEY_TERMS_SCHEMA = {
    "type": "object",
    "properties": {
        "terms": {
            "type": "array",
            "items": {"type": "string"},
        },
    },
    "required": ["terms"],
    "additionalProperties": False,
}

SUMMARY_SYSTEM = "\n".join(
    [
        "You are a rigorous, non-hallucinating note composer for college STEM courses.",
        "Produce a structured, detailed Markdown summary that is faithful to the source.",
        "Rules:",
        "1) Do NOT invent facts. If something is not present in the source, write "
        "\"Not stated in source.\"",
        "2) Keep equations, units and constraints exactly as given.",
        "3) Use the required headings verbatim and in the exact order.",
        "4) Be concise, but do not omit core steps, definitions or assumptions.",
        "5) If no homework is given, write 5 practice problems grounded only in the "
        "material, with brief answers at the end.",
    ]
)

SUMMARY_FORMAT = "\n".join(
    [
        "Create a structured Markdown document in exactly this format:",
        "",
        "# {Inferred Topic} Summary",
        "## TL;DR",
        "## Key Terms & Symbols",
        "## Main Ideas (Numbered)",
        "## Core Formulas",
        "## Worked Examples",
        "## Edge Cases & Common Pitfalls",
        "## Homework / Practice",
        "## Answers (Brief)",
    ]
)


def summary_basis(transcript: str | None, text_content: str | None) -> str:
    """Transcript followed by any document text, clipped for the prompt."""
    basis = (transcript or "") + (f"\n\n{text_content}" if text_content else "")
    return basis[:SUMMARY_BASIS_LIMIT]


def _clean_terms(terms: list) -> list[str]:
    seen: set[str] = set()
    cleaned: list[str] = []
    for term in terms:
        t = str(term).strip()
        if t and t.lower() not in seen:
            seen.add(t.lower())
            cleaned.append(t)
    return cleaned[:MAX_KEY_TERMS]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class SummaryService:
    """Lecture summaries and key terms via the Groq API."""

    def __init__(self, groq: GroqClient | None = None) -> None:
        self.groq = groq or GroqClient()

    async def summarize(self, basis: str) -> str:
        """Structured Markdown study notes for *basis*. Empty input gives ``""``."""
        if not basis.strip():
            return ""
        user = f"{SUMMARY_FORMAT}\n\nLECTURE TEXT:\n{basis[:SUMMARY_BASIS_LIMIT]}"
        return await self.groq.complete(SUMMARY_SYSTEM, user, 0.1)

    async def key_terms(self, basis: str) -> list[str]:
        """2-8 short, de-duplicated domain terms from *basis*."""
        if not basis.strip():
            return []
        messages = [
            {
                "role": "system",
                "content": (
                    "Extract 2-8 concise key terms from lecture text. "
                    "1-3 words per term, no punctuation except hyphens, no duplicates, "
                    "canonical forms (e.g. \"Newton's laws\"), domain vocabulary only."
                ),
            },
            {
                "role": "user",
                "content": f"TEXT:\n{basis[:KEY_TERMS_BASIS_LIMIT]}",
            },
        ]
        result = await self.groq.chat_json(
            messages, KEY_TERMS_SCHEMA, schema_name="key_terms", temperature=0
        )
        return _clean_terms(result.get("terms", []))
