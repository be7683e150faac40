"""
A leased automation connection.

Commands arrive as JSON-RPC 2.0 style dicts:

  {"jsonrpc": "2.0", "id": 7, "method": "browser_navigate", "params": {"url": "..."}}

handle() returns the reply dict for requests and None for notifications
(payloads without an "id"). Backend failures come back as JSON-RPC error
replies; only a page/context that has gone away raises ConnectionLostError.
"""

import asyncio
import base64
import logging
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError

from errors import ConnectionLostError

logger = logging.getLogger(__name__)

# JSON-RPC error codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
BACKEND_ERROR = -32000

TOOLS = {
    "ping": "Liveness check, returns an empty result",
    "tools/list": "List the supported methods",
    "browser_navigate": "Navigate the page to params.url",
    "browser_snapshot": "Return the current url, title and HTML",
    "browser_evaluate": "Evaluate params.expression in the page",
    "browser_click": "Click the element matching params.selector",
    "browser_type": "Fill params.text into the element matching params.selector",
    "browser_screenshot": "PNG screenshot, base64 encoded",
}


def _reply(request_id, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


class AutomationConnection:
    """
    One session's handle on a browser page.

    `owns_context` is False for leases on the shared context: closing such a
    lease never touches the page other sessions are using. `lock` is the
    shared forwarding lock in shared mode and a private one otherwise.
    """

    def __init__(self, page, context=None, lock: Optional[asyncio.Lock] = None, label: str = ""):
        self.page = page
        self.context = context
        self.lock = lock or asyncio.Lock()
        self.label = label
        self.released = False

    @property
    def owns_context(self) -> bool:
        return self.context is not None

    @property
    def closed(self) -> bool:
        return self.released or self.page.is_closed()

    async def handle(self, payload: dict) -> Optional[dict]:
        if self.closed:
            raise ConnectionLostError(f"automation connection {self.label} is closed")

        request_id = payload.get("id") if isinstance(payload, dict) else None
        method = payload.get("method") if isinstance(payload, dict) else None
        if not isinstance(method, str):
            return _error(request_id, INVALID_REQUEST, "payload must be an object with a string 'method'")

        params = payload.get("params") or {}
        if not isinstance(params, dict):
            return _error(request_id, INVALID_PARAMS, "params must be an object")

        async with self.lock:
            try:
                result = await self._dispatch(method, params)
            except LookupError as exc:
                return _error(request_id, INVALID_PARAMS, f"missing parameter: {exc}")
            except _UnknownMethod:
                return _error(request_id, METHOD_NOT_FOUND, f"unknown method: {method}")
            except PlaywrightError as exc:
                if self.page.is_closed():
                    raise ConnectionLostError(str(exc)) from exc
                logger.warning("Automation call %s failed: %s", method, exc)
                return _error(request_id, BACKEND_ERROR, str(exc))

        if "id" not in payload:
            return None
        return _reply(request_id, result)

    async def _dispatch(self, method: str, params: dict) -> Any:
        page = self.page

        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": [{"name": name, "description": desc} for name, desc in TOOLS.items()]}
        if method == "browser_navigate":
            response = await page.goto(params["url"])
            return {
                "url": page.url,
                "title": await page.title(),
                "status": response.status if response else None,
            }
        if method == "browser_snapshot":
            return {"url": page.url, "title": await page.title(), "content": await page.content()}
        if method == "browser_evaluate":
            return {"result": await page.evaluate(params["expression"])}
        if method == "browser_click":
            await page.click(params["selector"])
            return {}
        if method == "browser_type":
            await page.fill(params["selector"], params["text"])
            return {}
        if method == "browser_screenshot":
            png = await page.screenshot(full_page=bool(params.get("fullPage", False)))
            return {"mimeType": "image/png", "data": base64.b64encode(png).decode("ascii")}

        raise _UnknownMethod(method)

    async def close(self) -> None:
        """Drop the lease; an owned context is closed along with it."""
        self.released = True
        if not self.owns_context:
            return
        try:
            await self.context.close()
        except PlaywrightError as exc:
            # Browser already gone; nothing left to release.
            logger.debug("Context for %s was already closed: %s", self.label, exc)


class _UnknownMethod(Exception):
    pass
