"""Translate retrieval results into HTTP responses."""

from starlette.responses import RedirectResponse, Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from boxstore.infrastructure.external.storage import (
    RedirectTo,
    RetrievalResult,
    StreamedContent,
)


class ObjectStreamResponse(StreamingResponse):
    """Streams a StreamedContent body and releases it even if the client disconnects."""

    def __init__(self, content: StreamedContent) -> None:
        self.content = content
        super().__init__(
            content.iter_bytes(),
            status_code=content.status_code,
            headers=content.headers(),
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.content.aclose()


async def to_response(result: RetrievalResult) -> Response:
    """302 for redirect modes; 304 without body; otherwise the streamed object."""
    if isinstance(result, RedirectTo):
        return RedirectResponse(result.url, status_code=302)
    if result.body is None:
        await result.aclose()
        return Response(status_code=result.status_code, headers=result.headers())
    return ObjectStreamResponse(result)
