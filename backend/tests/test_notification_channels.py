import json

import httpx
import pytest

from services.errors import DeliveryError
from services.notification_channels import NotificationChannels


class Recorder:
    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})


def make_channels(recorder, **kwargs):
    return NotificationChannels(transport=httpx.MockTransport(recorder), **kwargs)


class TestSlack:
    async def test_posts_text(self):
        recorder = Recorder()
        assert await make_channels(recorder).send_slack("https://hooks.slack.test/x", "hello") is True

        request = recorder.requests[0]
        assert str(request.url) == "https://hooks.slack.test/x"
        assert json.loads(request.content) == {"text": "hello"}

    async def test_error_status_raises(self):
        with pytest.raises(DeliveryError):
            await make_channels(Recorder(500)).send_slack("https://hooks.slack.test/x", "hello")


class TestWebhook:
    async def test_posts_payload(self):
        recorder = Recorder()
        await make_channels(recorder).send_webhook("https://hooks.example.com/a", {"logId": "log-1"})
        assert json.loads(recorder.requests[0].content) == {"logId": "log-1"}

    async def test_transport_failure_raises(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        channels = NotificationChannels(transport=httpx.MockTransport(refuse))
        with pytest.raises(DeliveryError):
            await channels.send_webhook("https://hooks.example.com/a", {})


class TestEmail:
    async def test_posts_to_mailgun(self):
        recorder = Recorder()
        channels = make_channels(
            recorder,
            mailgun_api_key="key-123",
            mailgun_domain="mg.example.com",
            sender_email="alerts@example.com",
        )

        assert await channels.send_email(["ops@example.com"], "Subject", "<p>body</p>") is True

        request = recorder.requests[0]
        assert str(request.url) == "https://api.mailgun.net/v3/mg.example.com/messages"
        assert request.headers["authorization"].startswith("Basic ")
        assert b"ops%40example.com" in request.content

    async def test_not_configured(self):
        recorder = Recorder()
        assert await make_channels(recorder).send_email(["ops@example.com"], "s", "h") is False
        assert recorder.requests == []

    async def test_no_recipients(self):
        recorder = Recorder()
        channels = make_channels(recorder, mailgun_api_key="k", mailgun_domain="d")
        assert await channels.send_email([], "s", "h") is False
