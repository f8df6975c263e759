import pytest

from services.errors import InputError
from services.log_processor import LogProcessor

from conftest import make_log


@pytest.fixture
def processor():
    return LogProcessor()


class TestLogProcessor:
    def test_normalises_payload(self, processor):
        record = processor.process(make_log(
            "boom", "1700000000000",
            hostname="web-01",
            details={"userId": "u-1"},
            request={"method": "GET"},
        ))

        assert len(record["id"]) == 32
        assert record["project_id"] == "test-project"
        assert record["log_type"] == "application"
        assert record["timestamp_ms"] == 1_700_000_000_000
        assert record["detail_string"] == '{"userId":"u-1"}'
        assert record["stack_trace"] == []
        assert record["request"] == {"method": "GET"}
        assert record["created_at"].tzinfo is not None

    def test_client_detail_string_kept(self, processor):
        record = processor.process(make_log("boom", 1, details={"a": 1}, detailString="custom"))
        assert record["detail_string"] == "custom"

    def test_empty_details_serialized(self, processor):
        assert processor.process(make_log("boom", 1))["detail_string"] == "{}"

    @pytest.mark.parametrize("field", ["level", "environment", "projectId", "message", "timestampMS"])
    def test_missing_required_field(self, processor, field):
        payload = make_log("boom", 1)
        del payload[field]
        with pytest.raises(InputError) as exc:
            processor.process(payload)
        assert field in exc.value.message

    @pytest.mark.parametrize("payload", [[1, 2, 3], "x", None])
    def test_non_object_payload(self, processor, payload):
        with pytest.raises(InputError):
            processor.process(payload)

    @pytest.mark.parametrize("overrides", [
        {"logType": "audit"},
        {"details": ["not", "an", "object"]},
        {"stackTrace": "not a list"},
        {"timestampMS": "yesterday"},
    ])
    def test_invalid_fields(self, processor, overrides):
        with pytest.raises(InputError):
            processor.process(make_log("boom", 1, **overrides))
