# middleware/request_id.py
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
import uuid

from school_erp.core.logging import request_id_ctx


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id that is echoed back and attached to log records"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ):
        request.state.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(request.state.request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers["X-Request-ID"] = request.state.request_id
        return response
