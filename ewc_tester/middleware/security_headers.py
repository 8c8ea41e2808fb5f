"""
Security headers middleware.

Applies Content-Security-Policy, X-Content-Type-Options, X-Frame-Options,
Strict-Transport-Security, Referrer-Policy, and Permissions-Policy headers
to every response.

The API only serves JSON, so the default CSP allows nothing to run.  The
Salesforce OAuth callback page is the single HTML response and needs its
inline script to post the result back to the opener window.

Usage:
    from ewc_tester.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""

from flask import request

API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'"
CALLBACK_CSP = (
    "default-src 'none'; "
    "script-src 'unsafe-inline'; "
    "style-src 'unsafe-inline'; "
    "frame-ancestors 'none'; "
    "base-uri 'none'"
)
CALLBACK_PATH = "/api/v1/salesforce/callback"


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        csp = CALLBACK_CSP if request.path == CALLBACK_PATH else API_CSP
        response.headers.setdefault("Content-Security-Policy", csp)

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault(
            "Permissions-Policy",
            "camera=(), microphone=(), geolocation=(), payment=()"
        )
        response.headers.pop("Server", None)

        return response
