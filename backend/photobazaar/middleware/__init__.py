"""
PhotoBazaar Backend: Middleware Package
========================================

Cross-cutting concerns applied to every request.

Middleware chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Rate limiting rejects abusive clients before any work is done. The
    request ID is assigned before the access log line is written so both
    carry the same correlation id.
"""
