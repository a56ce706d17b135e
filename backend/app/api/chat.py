from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_generation_context
from app.api.security import get_requester_id
from app.generation.errors import ChatUnavailable
from app.models.chat import ChatRequest, ChatResponse
from app.services.chat_assistant import ChatResponder
from app.services.generation_context import GenerationContext
from app.services.session_store import session_store

router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.post("", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    user_id: str = Depends(get_requester_id),
    context: GenerationContext = Depends(get_generation_context),
) -> ChatResponse:
    responder = ChatResponder(context, session_store)
    try:
        result = responder.reply(
            payload.message,
            session_id=payload.sessionId,
            history=[turn.model_dump() for turn in payload.conversationHistory],
            user_id=user_id,
        )
    except ChatUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return ChatResponse(**result)
