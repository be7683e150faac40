import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from broker.lifecycle import LifecycleManager
from routes.deps import get_lifecycle

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stream"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",      # keep reverse proxies from buffering events
}


@router.get("/stream")
async def open_stream(request: Request, lifecycle: LifecycleManager = Depends(get_lifecycle)):
    """
    Opens the event stream and leases a browser for it.

    The first event carries the new session id and the command endpoint to
    POST to. If no browser can be acquired the client gets a 500 and no
    session is created.
    """
    client = request.client.host if request.client else "unknown"
    logger.info("New stream connection from %s", client)

    session = await lifecycle.open_session()
    return StreamingResponse(
        lifecycle.stream(session, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
