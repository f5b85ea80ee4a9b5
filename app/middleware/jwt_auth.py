"""
JWT Auth Middleware — parses the Bearer token and sets ``g.principal``.

Role checks happen at the route (``app.auth.require_role``); this hook only
turns verified claims into a Principal. Requests without a valid token get
``g.principal = None`` and are rejected by the route guard.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.auth import Principal
from app.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.principal = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
            g.principal = Principal(user_id=int(payload["sub"]), role=payload.get("role", ""))
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token", extra={"event_type": "token_expired"})
        except (pyjwt.InvalidTokenError, KeyError, ValueError) as exc:
            logger.warning("Rejected access token: %s", exc, extra={"event_type": "token_invalid"})
