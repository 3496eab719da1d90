"""Plan lifecycle notifications.

Events are POSTed as JSON to NOTIFICATION_WEBHOOK_URL when it is set and
only logged otherwise. Delivery is best-effort: a failed delivery is logged
and never fails the generation that triggered it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import httpx
from loguru import logger

from app.config.settings import settings

HTTP_TIMEOUT = 10.0


class PlanEventType(StrEnum):
    PLAN_READY = "plan_ready"
    PLAN_ERROR = "plan_error"


@dataclass(frozen=True)
class PlanEvent:
    type: PlanEventType
    user_id: str
    job_id: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"type": str(self.type), "userId": self.user_id, "jobId": self.job_id, "message": self.message}


class Notifier(Protocol):
    async def notify(self, event: PlanEvent) -> None: ...


class NotificationService:
    def __init__(self, webhook_url: str | None = None, timeout: float = HTTP_TIMEOUT):
        self.webhook_url = settings.notification_webhook_url if webhook_url is None else webhook_url
        self.timeout = timeout

    async def notify(self, event: PlanEvent) -> None:
        if not self.webhook_url:
            logger.info("Plan notification", event=event.type, user_id=event.user_id, job_id=event.job_id)
            return

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=event.to_dict())
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Plan notification delivery failed",
                event=event.type,
                user_id=event.user_id,
                error=str(e),
            )
            return

        logger.info("Plan notification delivered", event=event.type, user_id=event.user_id, job_id=event.job_id)
