import hashlib

import pytest

from services.alarm_matcher import AlarmRule, debounce_key, debounce_key_for, message_hash, rule_matches

LOG = {
    "project_id": "test-project",
    "log_type": "application",
    "level": "ERROR",
    "environment": "Production",
    "message": "Payment gateway timeout after 30s",
}


class TestRuleMatches:
    def test_matches_all_fields_case_insensitively(self):
        rule = AlarmRule(level="error", environment="PRODUCTION", message="GATEWAY TIMEOUT")
        assert rule_matches(rule, LOG)

    def test_level_list(self):
        assert rule_matches(AlarmRule(level=["WARN", "ERROR"], environment="production"), LOG)
        assert not rule_matches(AlarmRule(level=["WARN", "INFO"], environment="production"), LOG)

    def test_no_message_matches_any_message(self):
        assert rule_matches(AlarmRule(level="ERROR", environment="production"), LOG)

    @pytest.mark.parametrize("rule", [
        AlarmRule(logType="system", level="ERROR", environment="production"),
        AlarmRule(level="ERROR", environment="staging"),
        AlarmRule(level="ERROR", environment="production", message="database"),
    ])
    def test_mismatches(self, rule):
        assert not rule_matches(rule, LOG)

    def test_log_type_defaults_to_application(self):
        assert AlarmRule(level="ERROR", environment="production").logType == "application"


class TestDebounceKey:
    def test_format(self):
        expected_hash = hashlib.sha256(LOG["message"].encode("utf-8")).hexdigest()[:16]
        assert debounce_key_for(LOG) == f"alarm:test-project:application:production:ERROR:{expected_hash}"

    def test_normalises_environment_and_level_only(self):
        assert debounce_key("p", "application", "PROD", "error", "msg") == debounce_key("p", "application", "prod", "ERROR", "msg")
        assert debounce_key("p", "application", "prod", "ERROR", "Msg") != debounce_key("p", "application", "prod", "ERROR", "msg")

    def test_empty_message_sentinel(self):
        assert message_hash("") == "no-message"
        assert message_hash(None) == "no-message"
        assert debounce_key("p", "system", "prod", "ERROR", None).endswith(":no-message")
