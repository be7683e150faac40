from fastapi import APIRouter, Depends
from pydantic import BaseModel

from broker.lifecycle import LifecycleManager
from config import Settings
from routes.deps import get_lifecycle, get_settings

router = APIRouter(tags=["health"])


# ---------- Response schemas ----------

class HealthResponse(BaseModel):
    status: str = "ok"
    activeSessions: int
    transport: str = "sse"
    contextMode: str


class SessionList(BaseModel):
    sessions: list[dict]


# ---------- Endpoints ----------

@router.get("/health", response_model=HealthResponse)
async def health(
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
):
    return HealthResponse(
        activeSessions=lifecycle.active_count(),
        contextMode=settings.context_mode.value,
    )


@router.get("/sessions", response_model=SessionList)
async def list_sessions(lifecycle: LifecycleManager = Depends(get_lifecycle)):
    """Live sessions with their state and timestamps, for diagnostics."""
    return SessionList(sessions=[s.info() for s in lifecycle.registry.snapshot()])
