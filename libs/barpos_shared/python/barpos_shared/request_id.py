import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_rid_ctx: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Current request id, or an empty string outside of a request."""
    return _rid_ctx.get()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Propagate the caller's X-Request-ID (or mint one) so that every log line
    written while serving the request carries the same id.
    """

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        rid = (request.headers.get(self.header_name) or "").strip()[:64] or uuid.uuid4().hex
        _rid_ctx.set(rid)
        response: Response = await call_next(request)
        response.headers.setdefault(self.header_name, rid)
        return response
