import uuid
from datetime import datetime, timezone

from psycopg.types.json import Jsonb

from pathstore.logging import (
    _redact_pii,
    get_correlation_id,
    redact_params,
    set_correlation_id,
)


class TestRedactParams:
    def test_scalars_pass_through(self):
        uid = uuid.uuid4()
        now = datetime.now(timezone.utc)
        assert redact_params([uid, 3, 1.5, True, None, now]) == [uid, 3, 1.5, True, None, now]

    def test_long_strings_are_truncated(self):
        out = redact_params("x" * 200)
        assert out.startswith("x" * 64)
        assert out.endswith("(200 chars)")

    def test_json_payloads_become_key_lists(self):
        assert redact_params(Jsonb({"secret": "s", "answer": 42})) == {"keys": ["answer", "secret"]}

    def test_long_sequences_are_cut(self):
        out = redact_params(list(range(25)))
        assert out[:10] == list(range(10))
        assert out[-1] == "+15 more"

    def test_unknown_objects_become_type_names(self):
        assert redact_params(object()) == "object"


class TestProcessors:
    def test_pii_keys_are_masked(self):
        event = _redact_pii(None, "info", {"dsn": "postgresql://user:pw@host/db", "table": "path"})
        assert event["dsn"].startswith("po***")
        assert event["table"] == "path"

    def test_correlation_id_roundtrip(self):
        cid = set_correlation_id("req-123")
        assert cid == "req-123"
        assert get_correlation_id() == "req-123"
        assert set_correlation_id()
