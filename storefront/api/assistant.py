"""FAQ assistant API endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from storefront.api.deps import get_assistant
from storefront.schemas.assistant import AssistantAnswer, AssistantFeedback, AssistantQuestion
from storefront.services.assistant import Assistant

router = APIRouter(prefix="/assistant", tags=["Assistant"])


@router.post("/ask", response_model=AssistantAnswer)
async def ask(body: AssistantQuestion, assistant: Assistant = Depends(get_assistant)):
    return assistant.ask(body.question, body.user_id)


@router.post("/feedback")
async def feedback(body: AssistantFeedback, assistant: Assistant = Depends(get_assistant)):
    if not assistant.record_feedback(body.response_id, body.user_id, body.feedback_type):
        raise HTTPException(status_code=404, detail=f"Response {body.response_id} not found")
    return {"recorded": True}
