from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.dependencies import get_chat_service, get_viewer_id
from app.services.chat import ChatService

router = APIRouter(prefix="/api", tags=["chat"])


class ChatRequest(BaseModel):
    message: str = ""


@router.post("/classes/{class_id}/chat")
async def ask(
    class_id: str,
    body: ChatRequest,
    viewer_id: str = Depends(get_viewer_id),
    chat: ChatService = Depends(get_chat_service),
) -> dict:
    """Answer a question from the class materials this viewer may use.

    Returns ``{"answer": str, "citations": [...]}``; citations are empty when
    the answer is a refusal.
    """
    result = await chat.ask(viewer_id, class_id, body.message)
    return result.to_dict()


@router.get("/classes/{class_id}/chat")
async def history(
    class_id: str,
    viewer_id: str = Depends(get_viewer_id),
    chat: ChatService = Depends(get_chat_service),
) -> list[dict]:
    return [asdict(m) for m in await chat.history(viewer_id, class_id)]
