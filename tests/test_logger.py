import structlog

from tradelog.utils.logger import (
    REDACTED,
    bind_request,
    clear_request,
    mask_email,
    sanitize_log_data,
)


class TestSanitize:

    def test_secrets_redacted_and_email_masked(self):
        out = sanitize_log_data({"user_id": "u1", "email": "trader@example.com",
                                 "token": "abc", "imported": 3})
        assert out == {"user_id": "u1", "email": "t***@example.com",
                       "token": REDACTED, "imported": 3}

    def test_nested(self):
        out = sanitize_log_data({"profile": {"password": "x"},
                                 "users": [{"email": "a@b.io"}, "plain"]})
        assert out["profile"]["password"] == REDACTED
        assert out["users"] == [{"email": "a***@b.io"}, "plain"]

    def test_mask_without_at(self):
        assert mask_email("not-an-email") == REDACTED


class TestRequestContext:

    def test_bind_and_clear(self):
        bind_request(None, "/api/risk")
        assert structlog.contextvars.get_contextvars() == {"user_id": "anonymous", "path": "/api/risk"}
        clear_request()
        assert structlog.contextvars.get_contextvars() == {}
