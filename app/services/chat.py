"""One chat turn: persist the question, retrieve, answer, persist the answer.

Turn states::

    QUERY_RECEIVED -> PERSISTED_USER_TURN -> SCOPE_RESOLVED -> RETRIEVED
        -> GROUNDED | UNGROUNDED -> PERSISTED_ASSISTANT_TURN

A blank question is rejected before anything is written.  When the viewer has
no eligible lectures, or nothing clears the relevance floor, the turn ends
UNGROUNDED with a fixed refusal and the completion model is never called.
Every assistant turn is stored with its citation list (empty when
ungrounded) so history replays exactly.
"""

import enum
import logging
from dataclasses import dataclass, field

from app.config import settings
from app.errors import GatewayError, NotFoundError, ValidationError
from app.models import ChatMessage, Citation, Lecture
from app.services.access import AccessResolver
from app.services.composer import REFUSAL, AnswerComposer
from app.services.retrieval import Retriever
from app.services.store import ClassNotesStore

logger = logging.getLogger(__name__)

_NO_MATERIALS = "I don't have any class materials I'm allowed to use for that yet."

NO_VISIBLE_MATERIALS = (
    f"{_NO_MATERIALS} Upload a lecture or some notes to this class first."
)
EXCLUDED_BY_PREFERENCES = (
    f"{_NO_MATERIALS} Every lecture you can see is currently excluded from AI "
    "answers; turn one back on in its lecture settings."
)


class TurnState(enum.Enum):
    QUERY_RECEIVED = "query_received"
    PERSISTED_USER_TURN = "persisted_user_turn"
    SCOPE_RESOLVED = "scope_resolved"
    RETRIEVED = "retrieved"
    GROUNDED = "grounded"
    UNGROUNDED = "ungrounded"
    PERSISTED_ASSISTANT_TURN = "persisted_assistant_turn"


@dataclass
class ChatAnswer:
    answer: str
    citations: list[Citation] = field(default_factory=list)
    grounded: bool = False

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "citations": [c.to_dict() for c in self.citations],
        }


def _display_name(lecture: Lecture) -> str | None:
    return lecture.original_name or lecture.descriptor


class ChatService:
    def __init__(
        self,
        store: ClassNotesStore,
        embedder,
        composer: AnswerComposer,
        resolver: AccessResolver | None = None,
        retriever: Retriever | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.composer = composer
        self.resolver = resolver or AccessResolver(store)
        self.retriever = retriever or Retriever(store)

    def _enter(self, state: TurnState, class_id: str) -> None:
        logger.debug("chat turn in class %s -> %s", class_id, state.value)

    async def history(
        self, viewer_id: str, class_id: str, limit: int | None = None
    ) -> list[ChatMessage]:
        if limit is None:
            limit = settings.history_limit
        return await self.store.list_messages(class_id, viewer_id, limit)

    async def ask(self, viewer_id: str, class_id: str, message: str) -> ChatAnswer:
        self._enter(TurnState.QUERY_RECEIVED, class_id)
        query = (message or "").strip()
        if not query:
            raise ValidationError("message required")

        clazz = await self.store.get_owned_class(class_id, viewer_id)
        if clazz is None:
            raise NotFoundError(f"Class {class_id} not found")

        # Loaded before the new turn is written so it is not repeated in the prompt.
        history = await self.history(viewer_id, class_id)

        await self.store.add_message(class_id, viewer_id, "user", query)
        self._enter(TurnState.PERSISTED_USER_TURN, class_id)

        try:
            query_vector = await self.embedder.embed_one(query)
        except Exception as e:
            logger.error("Query embedding failed in class %s: %s", class_id, e)
            raise GatewayError(f"Embedding failed: {e}") from e

        scope = await self.resolver.resolve(viewer_id, class_id)
        self._enter(TurnState.SCOPE_RESOLVED, class_id)
        if not scope.eligible:
            text = (
                EXCLUDED_BY_PREFERENCES
                if scope.excluded_by_preference
                else NO_VISIBLE_MATERIALS
            )
            return await self._ungrounded(viewer_id, class_id, text)

        ranked = await self.retriever.retrieve(query_vector, scope.eligible)
        self._enter(TurnState.RETRIEVED, class_id)
        if not ranked:
            return await self._ungrounded(viewer_id, class_id, REFUSAL)

        self._enter(TurnState.GROUNDED, class_id)
        names = {
            lid: _display_name(lec)
            for lid, lec in scope.lectures.items()
            if _display_name(lec)
        }
        try:
            composed = await self.composer.compose(
                clazz.name, ranked, history, query, names
            )
        except Exception as e:
            logger.error("Completion failed in class %s: %s", class_id, e)
            raise GatewayError(f"Completion failed: {e}") from e

        await self.store.add_message(
            class_id,
            viewer_id,
            "assistant",
            composed.answer,
            [c.to_dict() for c in composed.citations],
        )
        self._enter(TurnState.PERSISTED_ASSISTANT_TURN, class_id)
        logger.info(
            "Answered in class %s with %d citations", class_id, len(composed.citations)
        )
        return ChatAnswer(
            answer=composed.answer, citations=composed.citations, grounded=True
        )

    async def _ungrounded(self, viewer_id: str, class_id: str, text: str) -> ChatAnswer:
        self._enter(TurnState.UNGROUNDED, class_id)
        await self.store.add_message(class_id, viewer_id, "assistant", text, [])
        self._enter(TurnState.PERSISTED_ASSISTANT_TURN, class_id)
        return ChatAnswer(answer=text, citations=[], grounded=False)
