# SPDX-License-Identifier: Apache-2.0

"""
Fire-and-forget dispatch of case change events.

The notifier runs after a mutation has committed. Channel failures are
logged and never propagate to the caller.
"""

import logging
from typing import List, Optional
from opentelemetry import trace

from ..models.entities import CaseEvent
from .amqp import AMQPService
from .redis import RedisService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CaseNotifier:
    """Publishes case events to every configured channel."""

    def __init__(self, amqp_service: Optional[AMQPService] = None,
                 redis_service: Optional[RedisService] = None):
        self.amqp_service = amqp_service
        self.redis_service = redis_service

    @property
    def channels(self) -> List[str]:
        channels = []
        if self.amqp_service is not None:
            channels.append("amqp")
        if self.redis_service is not None:
            channels.append("redis")
        return channels

    def notify(self, event: CaseEvent) -> None:
        with tracer.start_as_current_span("notifier.case_event") as span:
            span.set_attributes({
                "case.id": event.case_id,
                "event.kind": event.event_kind.value,
                "case.status": event.status.value
            })

            if self.amqp_service is not None:
                try:
                    result = self.amqp_service.publish_case_event(event)
                    if not result.success:
                        logger.warning(
                            "Case event not delivered to AMQP",
                            extra={"extra_fields": {"case_id": event.case_id, "error": result.error}}
                        )
                except Exception as e:
                    logger.error(
                        "AMQP notification raised",
                        extra={"extra_fields": {"case_id": event.case_id, "error": str(e)}},
                        exc_info=True
                    )

            if self.redis_service is not None:
                try:
                    self.redis_service.publish_case_event(event)
                except Exception as e:
                    logger.error(
                        "Redis notification raised",
                        extra={"extra_fields": {"case_id": event.case_id, "error": str(e)}},
                        exc_info=True
                    )


class NullNotifier(CaseNotifier):
    """Notifier that drops every event."""

    def __init__(self):
        super().__init__()

    def notify(self, event: CaseEvent) -> None:
        logger.debug(f"Dropping {event.event_kind.value} event for case {event.case_id}")
