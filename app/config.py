from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Groq (chat completions)
    groq_api_key: str = "gsk_placeholder"
    default_model: str = "llama-3.3-70b-versatile"

    # OpenAI (embeddings)
    openai_api_key: str = "sk-placeholder"
    embedding_model: str = "text-embedding-3-small"

    # Retrieval tuning. These were tuned empirically; changing them changes
    # which chunks reach the model.
    chunk_max_chars: int = 800
    min_score: float = 0.18
    top_k: int = 12
    retrieval_cap: int = 4000
    history_limit: int = 50
    history_tail: int = 12
    preview_chars: int = 280
    backfill_limit: int = 200
    chat_temperature: float = 0.2

    # Storage
    db_path: str = "class_notes.db"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
