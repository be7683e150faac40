import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from broker.router import MessageRouter
from errors import InvalidPayloadError
from routes.deps import get_router

router = APIRouter(tags=["commands"])


# ---------- Response schema ----------

class CommandAccepted(BaseModel):
    status: str = "accepted"
    sessionId: str


# ---------- Endpoint ----------

@router.post("/commands", status_code=202, response_model=CommandAccepted)
async def submit_command(
    request: Request,
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    message_router: MessageRouter = Depends(get_router),
):
    """
    Accepts one command (or a JSON-RPC batch) for the session named by
    `?sessionId=`. The result is pushed over that session's stream; this
    response only acknowledges the submission.
    """
    session = message_router.resolve(session_id)

    raw = await request.body()
    try:
        payload = json.loads(raw)
    except ValueError:
        raise InvalidPayloadError("invalid JSON payload") from None

    message_router.route(session.session_id, payload)
    return CommandAccepted(sessionId=session.session_id)
