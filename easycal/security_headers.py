"""
Security Headers Middleware for FastAPI

Adds security headers to all responses. The app runs inside the GHL
dashboard iframe, so framing is allowed from the GHL domains and the
configured frontend origins instead of being denied outright.
"""

import logging
import os
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .config import APP_BASE_URL

logger = logging.getLogger(__name__)

IS_PRODUCTION = os.getenv("ENVIRONMENT", "development").lower() == "production"
FRONTEND_ORIGINS = os.getenv("FRONTEND_ORIGINS", APP_BASE_URL)

GHL_FRAME_ANCESTORS = [
    "https://app.gohighlevel.com",
    "https://*.gohighlevel.com",
    "https://*.leadconnectorhq.com",
]


def get_csp_policy() -> str:
    """Content-Security-Policy for a JSON API that is embedded in GHL"""
    frontend_origins = [origin.strip() for origin in FRONTEND_ORIGINS.split(",") if origin.strip()]
    frame_ancestors = " ".join(["'self'"] + frontend_origins + GHL_FRAME_ANCESTORS)

    directives = [
        "default-src 'self'",
        f"frame-ancestors {frame_ancestors}",
        "img-src 'self' data: https:",
        "style-src 'self'",
        "connect-src 'self' https://services.leadconnectorhq.com",
        "base-uri 'none'",
        "form-action 'self'",
    ]
    return "; ".join(directives)


def get_permissions_policy() -> str:
    features = [
        "accelerometer=()",
        "camera=()",
        "geolocation=()",
        "gyroscope=()",
        "magnetometer=()",
        "microphone=()",
        "payment=()",
        "usb=()",
        "interest-cohort=()",
    ]
    return ", ".join(features)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds security headers to all responses.

    X-Frame-Options is not sent: it cannot express a list of allowed
    parents, and frame-ancestors in the CSP takes precedence anyway.
    """

    def __init__(self, app, exclude_paths: Optional[list[str]] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or []

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        path = request.url.path
        if any(path.startswith(excluded) for excluded in self.exclude_paths):
            return response

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = get_csp_policy()

        # HTTPS only in production
        if IS_PRODUCTION:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

        response.headers["Permissions-Policy"] = get_permissions_policy()

        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

        response.headers["X-Permitted-Cross-Domain-Policies"] = "none"
        # OAuth install opens the marketplace in a popup
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin-allow-popups"

        return response
