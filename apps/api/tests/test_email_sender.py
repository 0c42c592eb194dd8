import json

import httpx
import pytest

from helpdesk.core.config import settings
from helpdesk.services import email_sender


@pytest.mark.asyncio
async def test_send_email_dry_run_without_api_key(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "")

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("dry run must not call Resend")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        message_id = await email_sender.send_email(
            client, to_email="agent@example.com", subject="Hi", text="Body"
        )

    assert message_id is None
    assert email_sender.is_configured() is False


@pytest.mark.asyncio
async def test_send_email_posts_to_resend(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(settings, "EMAIL_FROM", "help@example.com")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_123"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        message_id = await email_sender.send_email(
            client,
            to_email="customer@example.com",
            subject="Re: Help",
            text="On it",
            headers={"In-Reply-To": "<m1@example.com>"},
        )

    assert message_id == "email_123"
    assert seen["url"] == email_sender.RESEND_API_URL
    assert seen["auth"] == "Bearer re_test"
    assert seen["body"] == {
        "from": "help@example.com",
        "to": ["customer@example.com"],
        "subject": "Re: Help",
        "text": "On it",
        "headers": {"In-Reply-To": "<m1@example.com>"},
    }


@pytest.mark.asyncio
async def test_send_email_raises_on_rejection(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "bad"}))
    ) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await email_sender.send_email(client, to_email="x@example.com", subject="s", text="t")
