# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT access tokens.

Tokens are RS256-signed and carry the caller's identity claims: subject,
administrator flag and credentials such as certified_mediator. The
workflow engine only ever sees the CallerContext built from them.
"""

import os
import uuid
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
import logging

from ..models.entities import CallerContext

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


def generate_key_pair() -> Tuple[str, str]:
    """Generate an RSA key pair in PEM format."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048
    )

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')

    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

    return private_pem, public_pem


class AuthService:
    """JWT authentication service with RS256 signing."""

    def __init__(self, private_key: Optional[str] = None, public_key: Optional[str] = None):
        """
        Initialize the authentication service.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")

        if not private_key or not public_key:
            logger.warning("JWT key pair not configured, generating development key pair")
            private_key, public_key = generate_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.access_token_expire_minutes = int(os.getenv("JWT_ACCESS_TOKEN_MINUTES", "15"))

    def issue_access_token(
        self,
        user_id: str,
        is_admin: bool = False,
        credentials: Optional[List[str]] = None,
        name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Issue a signed access token for a user.

        Args:
            user_id: Subject of the token
            is_admin: Administrator flag
            credentials: Credential claims
            name: Display name

        Returns:
            Dictionary containing access_token and metadata
        """
        with tracer.start_as_current_span("auth.issue_access_token") as span:
            span.set_attributes({
                "auth.operation": "issue_access_token",
                "user.id": user_id
            })

            now = datetime.now(timezone.utc)
            access_exp = now + timedelta(minutes=self.access_token_expire_minutes)

            payload = {
                "sub": user_id,
                "is_admin": is_admin,
                "credentials": list(credentials or []),
                "name": name,
                "jti": str(uuid.uuid4()),
                "iat": now,
                "exp": access_exp,
                "type": "access"
            }

            access_token = jwt.encode(payload, self.private_key, algorithm=self.algorithm)

            span.set_attribute("auth.tokens_generated", "success")
            logger.info(
                "Access token issued",
                extra={"user_id": user_id, "access_expires_at": access_exp.isoformat()}
            )

            return {
                "access_token": access_token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "access_expires_at": access_exp.isoformat()
            }

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["sub", "exp"]}
                )

            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")

            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != token_type:
                span.set_attribute("auth.validation_result", "wrong_type")
                raise TokenValidationError(f"Invalid token type. Expected {token_type}")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload.get("sub")
            })
            return payload

    def extract_token_id(self, token: str) -> str:
        """
        Extract a unique identifier from a token for blocklist purposes.

        Args:
            token: JWT token string

        Returns:
            Unique token identifier
        """
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.error(f"Failed to extract token ID: {str(e)}")
            raise TokenValidationError(f"Invalid token format: {str(e)}")

        return payload.get("jti") or f"{payload.get('sub')}:{payload.get('iat')}:{payload.get('type')}"

    def build_caller_context(self, payload: Dict[str, Any], request_info: Optional[Dict[str, Any]] = None) -> CallerContext:
        """Build the caller identity from a validated token payload."""
        request_info = request_info or {}
        return CallerContext(
            user_id=payload["sub"],
            is_admin=bool(payload.get("is_admin", False)),
            credentials=list(payload.get("credentials") or []),
            name=payload.get("name"),
            token_payload=payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent")
        )
