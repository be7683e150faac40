import json
from typing import Any, Optional

from pydantic import BaseModel


class Frame(BaseModel):
    """One Server-Sent Events message."""

    event: str                  # "session" | "message" | "error" | "close"
    data: Any = None
    id: Optional[str] = None

    def encode(self) -> str:
        payload = self.data if isinstance(self.data, str) else json.dumps(self.data, separators=(",", ":"))
        lines = []
        if self.id is not None:
            lines.append(f"id: {self.id}")
        lines.append(f"event: {self.event}")
        # Multi-line data must be split across data fields
        lines.extend(f"data: {line}" for line in payload.split("\n"))
        return "\n".join(lines) + "\n\n"


KEEPALIVE = ": ping\n\n"
