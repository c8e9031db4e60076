# SPDX-License-Identifier: Apache-2.0

"""
Redis service for the JWT token blocklist and realtime case channels.

Case events are published on pub/sub channels named grievances:<case_id>
so open case views can refresh. Every operation degrades to a logged
failure when Redis is unreachable.
"""

import os
import json
import time
from typing import Optional, Dict, Any
import redis
from opentelemetry import trace
import logging

from ..models.entities import CaseEvent

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

CASE_CHANNEL_PREFIX = "grievances"
BLOCKLIST_PREFIX = "jwt:blocked"


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


def case_channel(case_id: str) -> str:
    """Pub/sub channel name for a case."""
    return f"{CASE_CHANNEL_PREFIX}:{case_id}"


class RedisService:
    """Redis service backed by the redis-py client."""

    def __init__(self, redis_url: Optional[str] = None, client=None):
        """
        Initialize the Redis service.

        Args:
            redis_url: Redis connection URL (redis://host:port)
            client: Pre-built redis client, used as-is when given
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")

        if client is not None:
            self.client = client
            return

        try:
            self.client = redis.from_url(self.redis_url, decode_responses=True)
            self._test_connection()
            logger.info(f"Redis service initialized successfully at {self.redis_url}")
        except (redis.RedisError, RedisConnectionError) as e:
            logger.error(f"Failed to initialize Redis service: {str(e)}")
            self.client = None

    def _test_connection(self) -> None:
        """Test Redis connection."""
        try:
            if not self.client.ping():
                raise RedisConnectionError("Redis ping failed")
        except redis.RedisError as e:
            logger.error(f"Redis connection test failed: {str(e)}")
            raise RedisConnectionError(f"Redis connection failed: {str(e)}")

    def is_available(self) -> bool:
        """Check if Redis service is available."""
        return self.client is not None

    def exists(self, key: str) -> bool:
        if not self.client:
            return False

        try:
            return bool(self.client.exists(key))
        except redis.RedisError as e:
            logger.error(f"Redis exists check failed for key {key}: {str(e)}")
            return False

    # JWT Token Blocklist Methods

    def is_token_blocked(self, token_id: str) -> bool:
        """
        Check if a JWT token is in the blocklist.

        Args:
            token_id: Unique token identifier

        Returns:
            True if token is blocked, False otherwise
        """
        if not self.is_available():
            logger.warning("Redis unavailable for token blocklist check - allowing token")
            return False

        with tracer.start_as_current_span("redis.is_token_blocked") as span:
            span.set_attributes({
                "redis.operation": "is_token_blocked",
                "auth.token_id": token_id
            })

            result = self.exists(f"{BLOCKLIST_PREFIX}:{token_id}")

            span.set_attribute("auth.token_blocked", result)
            return result

    # Realtime case channels

    def publish_case_event(self, event: CaseEvent) -> bool:
        """
        Publish a case event on the case's pub/sub channel.

        Args:
            event: Case change event

        Returns:
            True if published, False otherwise
        """
        if not self.is_available():
            logger.debug("Redis unavailable, skipping case event publish")
            return False

        channel = case_channel(event.case_id)

        with tracer.start_as_current_span("redis.publish_case_event") as span:
            span.set_attributes({
                "redis.channel": channel,
                "event.kind": event.event_kind.value
            })

            try:
                receivers = self.client.publish(channel, json.dumps(event.model_dump(mode="json")))
                span.set_attribute("redis.receivers", receivers)
                return True
            except redis.RedisError as e:
                span.set_attribute("redis.result", "error")
                logger.error(
                    "Redis case event publish failed",
                    extra={"extra_fields": {"channel": channel, "error": str(e)}}
                )
                return False

    # Health Check Methods

    def ping(self) -> bool:
        if not self.is_available():
            return False

        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {str(e)}")
            return False

    def health_check(self) -> Dict[str, Any]:
        """
        Perform Redis health check.

        Returns:
            Health check results
        """
        if not self.is_available():
            return {
                "status": "unavailable",
                "message": "Redis client not initialized",
                "timestamp": time.time()
            }

        start_time = time.time()
        healthy = self.ping()
        response_time = (time.time() - start_time) * 1000  # ms

        return {
            "status": "healthy" if healthy else "unhealthy",
            "response_time_ms": round(response_time, 2),
            "timestamp": time.time()
        }


def create_redis_service() -> Optional[RedisService]:
    """
    Factory function to create Redis service instance.

    Returns:
        RedisService instance, or None when Redis is disabled
    """
    if os.getenv("REDIS_ENABLED", "true").lower() != "true":
        logger.info("Redis disabled by configuration")
        return None

    return RedisService()
