"""Log formatting: secret masking and context propagation."""
import json
import logging

from app.logging_config import JSONFormatter, mask_secrets, order_id_ctx, request_id_ctx


def test_mask_secrets():
    assert mask_secrets('"token": "abc123"') == '"token": "***"'
    assert "whsec_***" in mask_secrets("secret whsec_AbC123xyz")
    assert mask_secrets("t=1,v1=" + "a" * 64) == "t=1,v1=***"


def test_json_formatter_carries_context():
    rid = request_id_ctx.set("req-1")
    oid = order_id_ctx.set("500")
    try:
        record = logging.LogRecord("domainpub.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        entry = json.loads(JSONFormatter().format(record))
    finally:
        request_id_ctx.reset(rid)
        order_id_ctx.reset(oid)

    assert entry["message"] == "hello world"
    assert entry["request_id"] == "req-1"
    assert entry["order_id"] == "500"
    assert entry["logger"] == "domainpub.test"


def test_json_formatter_drops_empty_context():
    record = logging.LogRecord("domainpub.test", logging.WARNING, __file__, 1, "plain", (), None)
    entry = json.loads(JSONFormatter().format(record))
    assert "request_id" not in entry
    assert "order_id" not in entry
