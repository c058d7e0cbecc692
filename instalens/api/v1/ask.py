"""Question answering over scraped Instagram data."""

import logging
from typing import Any, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from instalens.auth.access import verify_access_code
from instalens.qa.assistant import AssistantError, AssistantNotConfigured
from instalens.scraping.models import ScrapedCommentsResult, ScrapedProfileResult

router = APIRouter()
logger = logging.getLogger(__name__)

# Set by main.py during lifespan (same pattern as scrape.py)
_assistant = None


def set_assistant(assistant):
    global _assistant
    _assistant = assistant


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AskRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question: Any = None
    context_type: Optional[Literal["profile", "post", "mixed"]] = None
    profile_data: Optional[ScrapedProfileResult] = None
    comments_data: Optional[ScrapedCommentsResult] = None
    conversation_history: List[ConversationMessage] = []


class AskResponse(BaseModel):
    answer: str


@router.post("/ask", response_model=AskResponse, dependencies=[Depends(verify_access_code)])
def ask(request: AskRequest):
    """Answer a question using only the supplied profile/comments data.

    No conversation state is kept here; send the running history each turn.
    """
    if not isinstance(request.question, str) or not request.question.strip():
        raise HTTPException(status_code=400, detail="Question is required and must be a non-empty string")
    if request.profile_data is None and request.comments_data is None:
        raise HTTPException(status_code=400, detail="Either profileData or commentsData must be provided")
    if request.context_type == "profile" and request.profile_data is None:
        raise HTTPException(status_code=400, detail='profileData is required when contextType is "profile"')
    if request.context_type == "post" and request.comments_data is None:
        raise HTTPException(status_code=400, detail='commentsData is required when contextType is "post"')

    if _assistant is None:
        raise HTTPException(status_code=503, detail="Assistant not initialized")

    try:
        answer = _assistant.answer(
            request.question.strip(),
            profile=request.profile_data,
            comments=request.comments_data,
            history=[m.model_dump() for m in request.conversation_history],
        )
    except AssistantNotConfigured as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except AssistantError as exc:
        logger.error("AI answer error: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))

    return AskResponse(answer=answer)
