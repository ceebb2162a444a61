from __future__ import annotations

import logging

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from vidtube.core.errors import PayloadTooLargeError, api_error_response

logger = logging.getLogger(__name__)

LIMITED_CONTENT_TYPES = ("application/json", "application/x-www-form-urlencoded")


class BodySizeLimitMiddleware:
    """Rejects JSON and urlencoded bodies larger than ``max_body_bytes`` with 413.

    The declared ``Content-Length`` is checked first. The bytes actually
    received are counted as well, so chunked bodies without a length are
    capped too. The buffered body is replayed to the application.
    """

    def __init__(self, app: ASGIApp, *, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        if not headers.get("content-type", "").startswith(LIMITED_CONTENT_TYPES):
            await self.app(scope, receive, send)
            return

        content_length = headers.get("content-length")
        if content_length is not None and content_length.isdigit() and int(content_length) > self.max_body_bytes:
            await self._reject(scope, receive, send, content_length)
            return

        chunks: list[bytes] = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                logger.debug("Client disconnected while sending body path=%s", scope.get("path"))
                return
            body = message.get("body", b"")
            received += len(body)
            if received > self.max_body_bytes:
                await self._reject(scope, receive, send, received)
                return
            chunks.append(body)
            more_body = message.get("more_body", False)

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": b"".join(chunks), "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: object) -> None:
        logger.warning("Request body too large path=%s bytes=%s", scope.get("path"), size)
        response = api_error_response(PayloadTooLargeError(f"Request body exceeds {self.max_body_bytes} bytes"))
        await response(scope, receive, send)
