from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.chat_controller import handle_chat
from utils.errors import RelayError

router = APIRouter(tags=["chat"])


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    thread_id: Optional[str] = Field(default=None, alias="threadId")


@router.post("/chat")
async def post_chat(request: Request, payload: ChatRequest):
    """Relay a text message to the assistant and return its reply."""
    try:
        return await handle_chat(request, payload.message, payload.thread_id)
    except (HTTPException, RelayError):
        raise
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))
