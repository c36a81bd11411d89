"""
Chat API endpoint for assistant interactions.

Endpoint: POST /v1/chat
Request: { "message": "user's natural language input" }
Response: { "ok": true, "assistantText": "...", "outcome": "...", "pendingActionSummary": {...} }

Outcomes:
- proposed: the assistant set up an action; the text names the exact phrase
- executed: a confirmation ran the pending action
- mismatch: the phrase doesn't match the pending action (nothing ran)
- nothing_pending: a confirmation or cancel arrived with nothing pending
- cancelled: the pending action was dropped
- reply: ordinary assistant text

Sample exchange:

1. Propose:
   Request: {"message": "email sam@example.com that I'm running late"}
   Response: {
     "ok": true,
     "assistantText": "Here's the email I'm ready to send ... Reply \"Send it\" to send it, ...",
     "outcome": "proposed",
     "pendingActionSummary": {"actionType": "send_email", "provider": "google", ...}
   }

2. Confirm:
   Request: {"message": "Send it."}
   Response: {
     "ok": true,
     "assistantText": "Sent your email to sam@example.com with subject \"Running late\".",
     "outcome": "executed",
     "pendingActionSummary": null
   }

Failures come back as {"ok": false, "error": "<code>", "details": "<message>"}.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from mindenu.dependencies import get_chat_service, get_current_uid, get_token_store
from mindenu.models.chat import ChatRequest, ChatResponse, ErrorResponse
from mindenu.services.chat_service import ChatService
from mindenu.services.token_store import TokenStore
from mindenu.utils.errors import AuthError
from mindenu.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


ERROR_RESPONSES = {status: {"model": ErrorResponse} for status in (400, 401, 500, 502, 504)}


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True, responses=ERROR_RESPONSES)
async def chat(
    request: ChatRequest,
    uid: str = Depends(get_current_uid),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Process a chat message.

    The uid always comes from the verified ID token. A uid in the body is
    accepted only when it matches.
    """
    if request.uid is not None and request.uid != uid:
        raise AuthError("That request doesn't belong to the signed-in user.", code="uid_mismatch")

    logger.info(f"Chat request from uid={uid} ({len(request.message)} chars)")
    outcome = await chat_service.process_message(uid, request.message)
    logger.info(f"Chat outcome for uid={uid}: {outcome.outcome.value}")

    if not outcome.ok:
        error = outcome.error
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    return ChatResponse(
        assistant_text=outcome.assistant_text,
        outcome=outcome.outcome.value,
        pending_action_summary=outcome.pending_summary,
    )


@router.get("/chat/status")
async def chat_status(
    uid: str = Depends(get_current_uid),
    store: TokenStore = Depends(get_token_store),
):
    """
    Get the pending action, if any.

    Lets the app restore a confirmation prompt after a restart.
    """
    pending = await store.get_pending_action(uid)
    return {
        "ok": True,
        "hasPending": pending is not None,
        "pendingActionSummary": pending.summary() if pending else None,
    }


@router.delete("/chat/pending")
async def clear_pending(
    uid: str = Depends(get_current_uid),
    store: TokenStore = Depends(get_token_store),
):
    """Drop the pending action without executing it."""
    await store.clear_pending_action(uid)
    return {"ok": True, "message": "Pending action cleared"}
