# Middleware package init
"""
CampusNotes Backend: Middleware Package
=========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Body Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Body Limit rejects oversize uploads from Content-Length before the
       multipart body is read
    2. Request ID sets the correlation ID used by every later log line
    3. Logging records status and duration once the response is built
"""
