import logging

from fastapi import APIRouter, Depends, HTTPException

from mediminder.api.deps import ServiceContainer, get_container
from mediminder.core.errors import ChatCooldownError, ChatProviderError, UnrecognizedResponseShape
from mediminder.schemas.models import ChatRequest, ChatResponse
from mediminder.services.chat import is_health_query

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

OFF_TOPIC_ANSWER = (
    "I can only help with health and medication questions. "
    "Please ask about your medicines, symptoms or care."
)

@router.post("/chat", response_model=ChatResponse)
async def chat(req: ChatRequest, c: ServiceContainer = Depends(get_container)):
    if not req.question.strip():
        raise HTTPException(status_code=400, detail="Question is empty.")
    if not is_health_query(req.question):
        return ChatResponse(answer=OFF_TOPIC_ANSWER)

    try:
        answer = await c.chat.ask(req.question)
    except ChatCooldownError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except (ChatProviderError, UnrecognizedResponseShape) as e:
        logger.error("chat failed: %s", e)
        raise HTTPException(status_code=502, detail="The assistant is unavailable right now. Please try again later.")

    return ChatResponse(answer=answer)
