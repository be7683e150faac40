from models.frame import Frame
from models.session import CloseReason, Session, SessionState

__all__ = ["CloseReason", "Frame", "Session", "SessionState"]
