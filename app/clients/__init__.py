from app.clients.embedding_client import EmbeddingClient
from app.clients.groq_client import GroqClient

__all__ = ["EmbeddingClient", "GroqClient"]
