# backend/services/alarm_dispatcher.py
import asyncio
import html
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Mapping, Optional

from services.alarm_matcher import AlarmRule
from services.notification_channels import NotificationChannels
from services.phrase_filter import get_stack_trace_text

logger = logging.getLogger(__name__)


def flatten_metadata(data: Optional[Mapping[str, Any]], prefix: str = "") -> Dict[str, str]:
    """{"headers": {"host": "x"}} -> {"headers.host": "x"}"""
    flat: Dict[str, str] = {}
    if not isinstance(data, Mapping):
        return flat

    for key, value in data.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_metadata(value, name))
        elif isinstance(value, list):
            flat[name] = ", ".join(str(v) for v in value)
        elif value is not None:
            flat[name] = str(value)
    return flat


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    if timestamp_ms is None:
        return ""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def build_alarm_payload(log: Mapping[str, Any], log_id: str, project: Any, base_url: str) -> Dict[str, Any]:
    """Delivery-neutral payload, built once per alarm"""
    return {
        "logId": log_id,
        "projectId": log.get("project_id"),
        "projectName": project.name,
        "level": log.get("level"),
        "environment": log.get("environment"),
        "logType": log.get("log_type"),
        "message": log.get("message") or "",
        "timestamp": format_timestamp(log.get("timestamp_ms")),
        "hostname": log.get("hostname") or "",
        "stackTrace": get_stack_trace_text(log),
        "link": f"{base_url.rstrip('/')}/projects/{log.get('project_id')}/logs/{log_id}",
        "request": flatten_metadata(log.get("request")),
    }


def render_subject(payload: Mapping[str, Any]) -> str:
    return f"[{payload['projectName']}] {payload['level']} in {payload['environment']}: {payload['message'][:80]}"


def render_text(payload: Mapping[str, Any]) -> str:
    lines = [
        f":rotating_light: *{payload['level']}* alarm in *{payload['projectName']}* ({payload['environment']})",
        f"*Message*: {payload['message']}",
        f"*Time*: {payload['timestamp']}",
    ]
    if payload["hostname"]:
        lines.append(f"*Host*: `{payload['hostname']}`")
    if payload["stackTrace"]:
        lines.append(f"```{payload['stackTrace'][:1500]}```")
    for key, value in payload["request"].items():
        lines.append(f"• {key}: {value}")
    lines.append(f"<{payload['link']}|View log>")
    return "\n".join(lines)


def render_html(payload: Mapping[str, Any]) -> str:
    rows = [
        ("Project", payload["projectName"]),
        ("Level", payload["level"]),
        ("Environment", payload["environment"]),
        ("Type", payload["logType"]),
        ("Time", payload["timestamp"]),
        ("Host", payload["hostname"]),
    ]
    rows.extend(payload["request"].items())
    table = "".join(
        f"<tr><th>{html.escape(str(k))}</th><td>{html.escape(str(v))}</td></tr>" for k, v in rows if v
    )
    stack = f"<pre>{html.escape(payload['stackTrace'])}</pre>" if payload["stackTrace"] else ""
    return (
        f"<h2>{html.escape(payload['message'])}</h2>"
        f"<table>{table}</table>{stack}"
        f"<p><a href=\"{html.escape(payload['link'])}\">View log</a></p>"
    )


class AlarmDispatcher:
    """Fans an alarm out to its configured channels; each channel succeeds or fails alone"""

    def __init__(self, channels: NotificationChannels):
        self.channels = channels

    async def _deliver(self, channel: str, send: Awaitable[bool], log_id: str) -> bool:
        try:
            delivered = await send
        except Exception as e:
            logger.error(f"✗ Alarm delivery via {channel} failed for log {log_id}: {e}")
            return False

        if delivered:
            logger.info(f"✓ Alarm delivered via {channel} for log {log_id}")
        return delivered

    async def dispatch(self, rule: AlarmRule, payload: Dict[str, Any]) -> Dict[str, bool]:
        methods = rule.deliveryMethods
        sends: Dict[str, Awaitable[bool]] = {}

        if methods.email is not None:
            sends["email"] = self.channels.send_email(
                methods.email.addresses, render_subject(payload), render_html(payload)
            )
        if methods.slack is not None:
            sends["slack"] = self.channels.send_slack(methods.slack.webhook, render_text(payload))
        if methods.webhook is not None:
            sends["webhook"] = self.channels.send_webhook(methods.webhook.url, payload)

        if not sends:
            return {}

        results = await asyncio.gather(
            *(self._deliver(channel, send, payload["logId"]) for channel, send in sends.items())
        )
        return dict(zip(sends.keys(), results))
