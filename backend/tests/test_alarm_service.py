import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from database.models import Project
from services.alarm_dispatcher import AlarmDispatcher
from services.alarm_service import AlarmService
from services.cache_service import CacheService
from services.errors import DeliveryError

from conftest import PROJECT_ID

SLACK_RULE = {
    "level": "ERROR",
    "environment": "production",
    "deliveryMethods": {"slack": {"webhook": "https://hooks.slack.test/a"}},
}
WEBHOOK_RULE = {
    "level": ["ERROR", "CRITICAL"],
    "environment": "production",
    "message": "timeout",
    "deliveryMethods": {"webhook": {"url": "https://hooks.example.com/b"}},
}

LOG = {
    "id": "log-1",
    "project_id": PROJECT_ID,
    "log_type": "application",
    "level": "ERROR",
    "environment": "PRODUCTION",
    "message": "Gateway timeout",
    "timestamp_ms": 1_000,
}


@pytest.fixture
def channels():
    return SimpleNamespace(
        send_email=AsyncMock(return_value=True),
        send_slack=AsyncMock(return_value=True),
        send_webhook=AsyncMock(return_value=True),
    )


async def add_project(project_store, alarms):
    return await project_store.add_project(
        Project(id=uuid.uuid4().hex, project_id=PROJECT_ID, name="Alarmed", alarms=alarms)
    )


def service(project_store, channels, cache=None):
    return AlarmService(project_store, AlarmDispatcher(channels), cache=cache, debounce_ttl_seconds=300)


class TestProcessLogAlarm:
    async def test_every_matching_rule_dispatches(self, project_store, channels, cache):
        await add_project(project_store, [SLACK_RULE, WEBHOOK_RULE])

        assert await service(project_store, channels, cache).process_log_alarm(LOG, "log-1") == 2
        channels.send_slack.assert_awaited_once()
        channels.send_webhook.assert_awaited_once()
        assert channels.send_webhook.await_args.args[1]["logId"] == "log-1"

    async def test_non_matching_rule_skipped(self, project_store, channels, cache):
        await add_project(project_store, [WEBHOOK_RULE])
        log = dict(LOG, message="Disk almost full")

        assert await service(project_store, channels, cache).process_log_alarm(log, "log-1") == 0
        channels.send_webhook.assert_not_called()

    async def test_no_rules(self, project_store, channels, cache):
        await add_project(project_store, [])
        assert await service(project_store, channels, cache).process_log_alarm(LOG, "log-1") == 0

    async def test_debounce_suppresses_repeat_within_ttl(self, project_store, channels, cache, fake_redis):
        await add_project(project_store, [SLACK_RULE])
        alarms = service(project_store, channels, cache)

        assert await alarms.process_log_alarm(LOG, "log-1") == 1
        fake_redis.advance(299)
        assert await alarms.process_log_alarm(dict(LOG, id="log-2"), "log-2") == 0
        assert channels.send_slack.await_count == 1

    async def test_delivers_again_after_ttl(self, project_store, channels, cache, fake_redis):
        await add_project(project_store, [SLACK_RULE])
        alarms = service(project_store, channels, cache)

        await alarms.process_log_alarm(LOG, "log-1")
        fake_redis.advance(301)
        await alarms.process_log_alarm(dict(LOG, id="log-2"), "log-2")

        assert channels.send_slack.await_count == 2

    async def test_different_message_not_debounced(self, project_store, channels, cache):
        await add_project(project_store, [SLACK_RULE])
        alarms = service(project_store, channels, cache)

        await alarms.process_log_alarm(LOG, "log-1")
        await alarms.process_log_alarm(dict(LOG, message="Gateway timeout (retry)"), "log-2")

        assert channels.send_slack.await_count == 2

    async def test_without_cache_every_match_dispatches(self, project_store, channels):
        await add_project(project_store, [SLACK_RULE])
        alarms = service(project_store, channels, cache=CacheService("redis://unused", enabled=False))

        assert alarms.debouncing is False
        await alarms.process_log_alarm(LOG, "log-1")
        await alarms.process_log_alarm(LOG, "log-1")
        assert channels.send_slack.await_count == 2

    async def test_failing_rule_does_not_stop_others(self, project_store, channels, cache):
        broken_rule = {"environment": "production", "deliveryMethods": {}}  # no level
        await add_project(project_store, [broken_rule, SLACK_RULE, WEBHOOK_RULE])
        channels.send_slack.side_effect = DeliveryError("slack delivery failed")

        dispatched = await service(project_store, channels, cache).process_log_alarm(LOG, "log-1")

        assert dispatched == 2
        channels.send_webhook.assert_awaited_once()
