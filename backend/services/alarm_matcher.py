# backend/services/alarm_matcher.py
"""Alarm rule matching and debounce keys. Pure functions, no I/O."""
import hashlib
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, Field

EMPTY_MESSAGE_SENTINEL = "no-message"
MESSAGE_HASH_LENGTH = 16


class EmailDelivery(BaseModel):
    addresses: List[str] = Field(default_factory=list)


class SlackDelivery(BaseModel):
    webhook: str


class WebhookDelivery(BaseModel):
    url: str


class DeliveryMethods(BaseModel):
    email: Optional[EmailDelivery] = None
    slack: Optional[SlackDelivery] = None
    webhook: Optional[WebhookDelivery] = None


class AlarmRule(BaseModel):
    logType: str = "application"
    level: Union[str, List[str]]
    environment: str
    message: Optional[str] = None  # None matches any message
    deliveryMethods: DeliveryMethods = Field(default_factory=DeliveryMethods)


def rule_matches(rule: AlarmRule, log: Mapping[str, Any]) -> bool:
    if rule.logType != log.get("log_type"):
        return False

    levels = rule.level if isinstance(rule.level, list) else [rule.level]
    if (log.get("level") or "").lower() not in {lvl.lower() for lvl in levels}:
        return False

    if rule.environment.lower() != (log.get("environment") or "").lower():
        return False

    if rule.message is None:
        return True
    return rule.message.lower() in (log.get("message") or "").lower()


def message_hash(message: Optional[str]) -> str:
    if not message:
        return EMPTY_MESSAGE_SENTINEL
    return hashlib.sha256(message.encode("utf-8")).hexdigest()[:MESSAGE_HASH_LENGTH]


def debounce_key(project_id: str, log_type: str, environment: str, level: str, message: Optional[str]) -> str:
    return ":".join([
        "alarm",
        project_id,
        log_type,
        environment.lower(),
        level.upper(),
        message_hash(message),
    ])


def debounce_key_for(log: Mapping[str, Any]) -> str:
    return debounce_key(
        log["project_id"],
        log.get("log_type") or "application",
        log.get("environment") or "",
        log.get("level") or "",
        log.get("message"),
    )
