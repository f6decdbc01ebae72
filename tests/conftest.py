"""
Shared fixtures: a throwaway SQLite database and deterministic gateway fakes.
"""

import pytest
import pytest_asyncio

from app.database import get_async_conn, init_db
from app.services.store import ClassNotesStore

pytest_plugins = ("pytest_asyncio",)

# Each keyword owns one dimension; texts with none of them embed to zero.
VOCAB = [
    "newton",
    "force",
    "mass",
    "acceleration",
    "energy",
    "photosynthesis",
    "cell",
    "entropy",
]


def keyword_vector(text: str) -> list[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCAB]


class FakeEmbedder:
    """Bag-of-keywords embedder that records every batch it is asked for."""

    def __init__(self, fail: bool = False, poison: str | None = None) -> None:
        self.fail = fail
        self.poison = poison
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        if self.poison and any(self.poison in t for t in texts):
            raise RuntimeError("bad input")
        return [keyword_vector(t) for t in texts]

    async def embed_one(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]


class FakeCompletion:
    """Stands in for GroqClient: canned text for ``complete``, canned terms for ``chat_json``."""

    def __init__(
        self,
        reply: str = "Force equals mass times acceleration [#1].",
        terms: list[str] | None = None,
        fail: bool = False,
    ) -> None:
        self.reply = reply
        self.terms = terms if terms is not None else ["Newton's laws", "force"]
        self.fail = fail
        self.calls: list[dict] = []

    async def complete(self, system_prompt: str, user_prompt: str, temperature=None) -> str:
        self.calls.append(
            {"system": system_prompt, "user": user_prompt, "temperature": temperature}
        )
        if self.fail:
            raise RuntimeError("completion service unavailable")
        return self.reply

    async def chat_json(self, messages, response_schema, **kwargs) -> dict:
        self.calls.append({"messages": messages, "schema": kwargs.get("schema_name")})
        if self.fail:
            raise RuntimeError("completion service unavailable")
        return {"terms": self.terms}


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "class_notes_test.db")


@pytest_asyncio.fixture
async def store(db_path):
    await init_db(db_path)
    conn = await get_async_conn(db_path)
    try:
        yield ClassNotesStore(conn)
    finally:
        await conn.close()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def completion():
    return FakeCompletion()
