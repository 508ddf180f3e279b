# middleware/security.py
"""
Security Middleware for Request Processing
"""

from flask import request


def security_headers(response):
    """Add security headers to all responses"""
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    response.headers['Permissions-Policy'] = 'camera=(), microphone=(), geolocation=()'

    return response


def client_identity() -> str:
    """Rate limit key for the current request (source IP, proxy-aware via ProxyFix)"""
    return request.remote_addr or 'unknown'


def rate_limit_headers(response, decision):
    """Expose the caller's current window on the response"""
    if decision is None:
        return response

    response.headers['X-RateLimit-Limit'] = str(decision.limit)
    response.headers['X-RateLimit-Remaining'] = str(decision.remaining)
    if decision.retry_after:
        response.headers['Retry-After'] = str(decision.retry_after)

    return response
