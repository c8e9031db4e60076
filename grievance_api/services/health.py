"""
Health Check Service

Reports the status of the case store and the notification channels.
Only the case store is critical; channel outages degrade the service.
"""

import os
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from opentelemetry import trace

from .amqp import AMQPService
from .case_store import CaseStore
from .redis import RedisService

tracer = trace.get_tracer(__name__)

SERVICE_NAME = "grievance-api"


class HealthCheckService:
    """Service for dependency health monitoring."""

    def __init__(self, store: CaseStore, redis_service: Optional[RedisService] = None,
                 amqp_service: Optional[AMQPService] = None):
        self.store = store
        self.redis_service = redis_service
        self.amqp_service = amqp_service
        self.service_version = os.getenv('SERVICE_VERSION', '1.0.0')

    def get_health(self) -> Dict[str, Any]:
        """Get health status including all dependencies."""
        with tracer.start_as_current_span("health.check") as span:
            start_time = time.time()

            store_health = self._check_store_health()
            redis_health = self._check_redis_health()
            amqp_health = self._check_amqp_health()

            overall_status = self._determine_overall_status(
                store_health["status"],
                [redis_health["status"], amqp_health["status"]]
            )
            response_time_ms = round((time.time() - start_time) * 1000, 2)

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.store_status": store_health["status"],
                "health.redis_status": redis_health["status"],
                "health.amqp_status": amqp_health["status"]
            })

            return {
                "status": overall_status,
                "service": SERVICE_NAME,
                "version": self.service_version,
                "environment": os.getenv('ENVIRONMENT', 'development'),
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "response_time_ms": response_time_ms,
                "dependencies": {
                    "store": store_health,
                    "redis": redis_health,
                    "amqp": amqp_health
                }
            }

    def _check_store_health(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.store_check") as span:
            try:
                health = self.store.health_check()
            except Exception as e:
                span.record_exception(e)
                health = {"status": "unhealthy", "error": str(e)}
            span.set_attribute("store.status", health.get("status", "unknown"))
            return health

    def _check_redis_health(self) -> Dict[str, Any]:
        if self.redis_service is None:
            return {"status": "disabled"}
        return self.redis_service.health_check()

    def _check_amqp_health(self) -> Dict[str, Any]:
        if self.amqp_service is None:
            return {"status": "disabled"}

        start_time = time.time()
        healthy = self.amqp_service.health_check()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "exchange": self.amqp_service.config.exchange,
            "response_time_ms": round((time.time() - start_time) * 1000, 2)
        }

    def _determine_overall_status(self, store_status: str, channel_statuses: list) -> str:
        """Unhealthy without a store, degraded when a channel is down."""
        if store_status != "healthy":
            return "unhealthy"
        if any(status not in ("healthy", "disabled") for status in channel_statuses):
            return "degraded"
        return "healthy"
