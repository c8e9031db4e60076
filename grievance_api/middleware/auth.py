# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and caller context.

Protected views receive the CallerContext built from the bearer token as
their first argument; it is also kept on flask.g for the request.
"""

from functools import wraps
from flask import request, jsonify, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from ..models.entities import CallerContext
from ..services.auth import TokenValidationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

PROBLEM_BASE_URL = "https://api.grievances.example/problems"


def _unauthorized(problem: str, title: str, detail: str):
    return jsonify({
        "type": f"{PROBLEM_BASE_URL}/{problem}",
        "title": title,
        "status": 401,
        "detail": detail,
        "instance": request.path
    }), 401


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation, blocklist checking and caller
    context building for protected endpoints.
    """

    def __init__(self, auth_service, redis_service=None):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
            redis_service: Redis service for token blocklist, optional
        """
        self.auth_service = auth_service
        self.redis_service = redis_service

    def extract_token_from_request(self) -> Optional[str]:
        """Extract the bearer token from the Authorization header."""
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None

        return auth_header

    def is_token_blocked(self, token: str) -> bool:
        """
        Check if token is in the Redis blocklist.

        Args:
            token: JWT token to check

        Returns:
            True if token is blocked, False otherwise
        """
        if self.redis_service is None:
            return False

        try:
            token_id = self.auth_service.extract_token_id(token)
            return self.redis_service.is_token_blocked(token_id)
        except Exception as e:
            logger.error(f"Error checking token blocklist: {str(e)}")
            # Fail secure - treat as blocked if we can't check
            return True

    def get_request_info(self) -> Dict[str, Any]:
        """Extract request metadata for the caller context."""
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', ''),
            "request_id": request.headers.get('X-Request-ID')
        }

    def build_caller_context(self, token_payload: Dict[str, Any]) -> CallerContext:
        return self.auth_service.build_caller_context(token_payload, self.get_request_info())


def require_auth(auth_middleware: AuthMiddleware) -> Callable:
    """
    Decorator to require JWT authentication for Flask routes.

    Args:
        auth_middleware: Configured AuthMiddleware instance

    Returns:
        Decorator function
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(*args, **kwargs):
            with tracer.start_as_current_span("auth.middleware.validate_request") as span:
                span.set_attribute("auth.operation", "validate_request")

                token = auth_middleware.extract_token_from_request()
                if not token:
                    span.set_attribute("auth.result", "missing_token")
                    logger.warning("Authentication failed: missing token")
                    return _unauthorized("authentication-required", "Authentication Required",
                                         "Missing authorization token")

                if auth_middleware.is_token_blocked(token):
                    span.set_attribute("auth.result", "token_blocked")
                    logger.warning("Authentication failed: token is blocked")
                    return _unauthorized("token-revoked", "Token Revoked", "Token has been revoked")

                try:
                    token_payload = auth_middleware.auth_service.validate_token(token, "access")
                except TokenValidationError as e:
                    span.set_attribute("auth.result", "invalid_token")
                    logger.warning(f"Authentication failed: {str(e)}")
                    return _unauthorized("invalid-token", "Invalid Token", str(e))

                caller = auth_middleware.build_caller_context(token_payload)
                g.caller = caller

                span.set_attributes({
                    "auth.result": "success",
                    "user.id": caller.user_id,
                    "user.is_admin": caller.is_admin
                })

                logger.debug(
                    "Authentication successful",
                    extra={"user_id": caller.user_id, "ip_address": caller.ip_address}
                )

            return f(caller, *args, **kwargs)

        return decorated_function
    return decorator


def require_caller(f: Callable) -> Callable:
    """Require authentication using the application's configured middleware."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_middleware = current_app.auth_middleware
        return require_auth(auth_middleware)(f)(*args, **kwargs)
    return decorated_function
