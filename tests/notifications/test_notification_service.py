import json

import httpx
import pytest

from app.notifications import service
from app.notifications.service import NotificationService, PlanEvent, PlanEventType


@pytest.fixture
def webhook(monkeypatch):
    """Route the service's httpx client through a mock transport."""
    received: list[httpx.Request] = []
    status = {"code": 204}

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(status["code"])

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        service.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return received, status


@pytest.mark.asyncio
async def test_posts_event_to_webhook(webhook):
    received, _ = webhook
    notifier = NotificationService(webhook_url="https://hooks.example.com/plans")

    await notifier.notify(PlanEvent(PlanEventType.PLAN_READY, "user-1", "job-1"))

    assert len(received) == 1
    assert received[0].url == "https://hooks.example.com/plans"
    assert json.loads(received[0].content) == {
        "type": "plan_ready",
        "userId": "user-1",
        "jobId": "job-1",
        "message": None,
    }


@pytest.mark.asyncio
async def test_delivery_failure_is_swallowed(webhook):
    received, status = webhook
    status["code"] = 500
    notifier = NotificationService(webhook_url="https://hooks.example.com/plans")

    await notifier.notify(PlanEvent(PlanEventType.PLAN_ERROR, "user-1", "job-1", message="boom"))

    assert len(received) == 1


@pytest.mark.asyncio
async def test_without_webhook_nothing_is_sent(webhook):
    received, _ = webhook

    await NotificationService(webhook_url="").notify(PlanEvent(PlanEventType.PLAN_READY, "user-1"))

    assert received == []
