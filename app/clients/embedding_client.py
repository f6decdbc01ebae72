from openai import AsyncOpenAI

from app.config import settings


class EmbeddingClient:
    """Async wrapper around the OpenAI embeddings endpoint.

    ``embed(texts)`` returns one vector per input, in input order.  Callers
    filter out blank strings before calling; the API rejects them.
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        self._model = model or settings.embedding_model
        self._client = AsyncOpenAI(api_key=api_key or settings.openai_api_key)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        resp = await self._client.embeddings.create(model=self._model, input=texts)
        # The API documents input order but also tags each item with its index.
        items = sorted(resp.data, key=lambda d: d.index)
        return [list(item.embedding) for item in items]

    async def embed_one(self, text: str) -> list[float]:
        vectors = await self.embed([text])
        return vectors[0]

    async def close(self) -> None:
        await self._client.close()
