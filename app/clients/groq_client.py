import json

from groq import AsyncGroq

from app.config import settings


class GroqClient:
    """Async wrapper around the official Groq SDK.

    Usage::

        groq = GroqClient()                                  # DEFAULT_MODEL from env
        text = await groq.complete(system, user, 0.2)        # single-shot completion
        text = await groq.chat(messages)                     # raw message list
        data = await groq.chat_json(messages, MY_SCHEMA)     # structured output

    Every call is one blocking round trip: no retries, no streaming.
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        self._model = model or settings.default_model
        self._client = AsyncGroq(api_key=api_key or settings.groq_api_key)

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------
    async def chat(
        self,
        messages: list[dict],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Plain-text chat completion. Returns the content string."""
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        resp = await self._client.chat.completions.create(**kwargs)
        return resp.choices[0].message.content or ""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
    ) -> str:
        """System + user prompt in, completion text out."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.chat(messages, temperature=temperature)

    async def chat_json(
        self,
        messages: list[dict],
        response_schema: dict,
        *,
        schema_name: str = "response",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        """Structured-output completion using Groq's strict JSON Schema mode.

        *response_schema* must be a valid JSON Schema dict.  Groq strict mode
        requires ``"additionalProperties": false`` on every object and all
        properties listed in ``"required"``.

        Returns the parsed JSON as a Python dict.
        """
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "strict": True,
                    "schema": response_schema,
                },
            },
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        resp = await self._client.chat.completions.create(**kwargs)
        return json.loads(resp.choices[0].message.content)

    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self._client.close()
