# Middleware package init
"""
StitchCraft Backend — Middleware Package
=========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [CORS] → Route Handler

    1. Rate Limit first: reject excess traffic before any processing
    2. Request ID: correlation ID for logs and error bodies
    3. Logging: access line with status, duration and organization
    4. CORS: FastAPI's CORSMiddleware (handles preflight)
"""
