"""
CampusNotes Backend: Request Body Limit Middleware
====================================================

What:  Rejects requests whose declared Content-Length exceeds the upload
       ceiling with 413 before any of the body is read.
How:   The ceiling is the configured file size limit plus a fixed allowance
       for multipart framing and form fields. The exact per-file check still
       happens in NoteService.validate_file, which answers 400.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from campusnotes.config import settings
from campusnotes.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Multipart boundaries, headers and metadata fields
FORM_OVERHEAD_BYTES = 1024 * 1024


class BodyLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, max_body_size: int = 0, **kwargs):
        super().__init__(app, **kwargs)
        self.max_body_size = max_body_size or settings.max_file_size + FORM_OVERHEAD_BYTES

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        declared = request.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_body_size:
            rid = request_id_var.get("")
            logger.warning(
                "Rejected %s %s: body of %s bytes exceeds %d",
                request.method,
                request.url.path,
                declared,
                self.max_body_size,
            )
            return JSONResponse(
                status_code=413,
                content={
                    "error": "payload_too_large",
                    "message": (
                        "File size too big. Only files up to "
                        f"{settings.file_size_limit_mb} MiB are allowed."
                    ),
                    "request_id": rid,
                },
            )
        return await call_next(request)
