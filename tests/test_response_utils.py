"""
Tests for response formatting and error types.
"""

import json

from shared.errors import (
    ConfigurationError,
    EventUndecodableError,
    SignatureInvalidError,
    UserStoreError,
    WebhookError,
)
from shared.response_utils import (
    handler_failed_response,
    json_response,
    received_response,
    text_response,
    webhook_error_response,
)


class TestJsonResponse:
    def test_basic_response(self):
        result = json_response(200, {"ok": True})

        assert result["statusCode"] == 200
        assert result["headers"] == {"Content-Type": "application/json"}
        assert json.loads(result["body"]) == {"ok": True}

    def test_extra_headers_merged(self):
        result = json_response(200, {}, headers={"Cache-Control": "no-cache"})

        assert result["headers"]["Content-Type"] == "application/json"
        assert result["headers"]["Cache-Control"] == "no-cache"

    def test_non_json_values_stringified(self):
        from datetime import date

        result = json_response(200, {"day": date(2025, 2, 28)})

        assert json.loads(result["body"]) == {"day": "2025-02-28"}


class TestWebhookResponses:
    def test_received(self):
        result = received_response()

        assert result["statusCode"] == 200
        assert json.loads(result["body"]) == {"received": True}

    def test_handler_failed_hides_cause(self):
        result = handler_failed_response()

        assert result["statusCode"] == 500
        assert json.loads(result["body"]) == {"error": "Webhook handler failed"}

    def test_webhook_error_is_plain_text(self):
        result = webhook_error_response("No signatures found")

        assert result["statusCode"] == 400
        assert result["headers"]["Content-Type"] == "text/plain"
        assert result["body"] == "Webhook Error: No signatures found"

    def test_text_response(self):
        assert text_response(204, "")["body"] == ""


class TestErrorTypes:
    def test_rejections_are_400(self):
        for error_cls in (SignatureInvalidError, EventUndecodableError):
            response = error_cls("bad").to_response()
            assert response["statusCode"] == 400
            assert response["body"] == "Webhook Error: bad"

    def test_failures_are_500(self):
        for error_cls in (WebhookError, ConfigurationError, UserStoreError):
            response = error_cls("boom").to_response()
            assert response["statusCode"] == 500
            assert json.loads(response["body"]) == {"error": "boom"}

    def test_codes(self):
        assert SignatureInvalidError("x").code == "invalid_signature"
        assert EventUndecodableError("x").code == "invalid_webhook_payload"
        assert ConfigurationError("x").code == "not_configured"
        assert UserStoreError("x").code == "user_store_error"
