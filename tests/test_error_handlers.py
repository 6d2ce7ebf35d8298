"""
Tests for error handlers.

Tests exception mapping, error sanitization, and response formatting.
"""

import json
import unittest

from app.error_handlers import (
    GENERIC_ERROR_MESSAGE,
    create_error_response,
    format_pydantic_errors,
    sanitize_details,
    sanitize_error_message,
)
from quota_proxy.exceptions import (
    AuthenticationError,
    ErrorCode,
    InternalError,
    InvalidArgumentError,
    TransactionConflictError,
    UpstreamError,
    UsageStoreError,
)


class TestErrorMessageSanitization(unittest.TestCase):
    """Tests for error message sanitization."""

    def test_normal_message_unchanged(self):
        message = "OpenAI error 500: The server had an error"
        self.assertEqual(sanitize_error_message(message), message)

    def test_unauthenticated_message_unchanged(self):
        self.assertEqual(sanitize_error_message("Unauthenticated"), "Unauthenticated")

    def test_rate_limit_message_kept(self):
        message = (
            "OpenAI error 429: Rate limit reached for gpt-4o-mini on tokens per min (TPM): "
            "Limit 200000, Used 199500, Requested 1200."
        )
        self.assertEqual(sanitize_error_message(message), message)

    def test_context_length_message_kept(self):
        message = (
            "OpenAI error 400: This model's maximum context length is 128000 tokens. "
            "However, your messages resulted in 130512 tokens."
        )
        self.assertEqual(sanitize_error_message(message), message)

    def test_api_key_is_masked_in_place(self):
        sanitized = sanitize_error_message("OpenAI error 401: Incorrect API key provided: sk-abc123xyz456")
        self.assertEqual(sanitized, "OpenAI error 401: Incorrect API key provided: [REDACTED]")

    def test_bare_openai_key_is_masked(self):
        sanitized = sanitize_error_message("rejected sk-proj-abcdefgh1234")
        self.assertNotIn("sk-proj-abcdefgh1234", sanitized)

    def test_bearer_token_is_masked(self):
        sanitized = sanitize_error_message("upstream rejected Bearer abc.def.ghi")
        self.assertNotIn("abc.def.ghi", sanitized)

    def test_connection_string_is_replaced(self):
        sanitized = sanitize_error_message("cannot reach redis://:pw@10.0.0.5:6379/0")
        self.assertEqual(sanitized, GENERIC_ERROR_MESSAGE)

    def test_file_path_is_replaced(self):
        self.assertEqual(sanitize_error_message("cannot open /etc/app/keys.json"), GENERIC_ERROR_MESSAGE)

    def test_ip_address_is_masked(self):
        self.assertEqual(sanitize_error_message("Connect to 10.0.0.5 failed"), "Connect to [ip] failed")

    def test_long_message_is_truncated(self):
        sanitized = sanitize_error_message("x" * 600)
        self.assertEqual(len(sanitized), 503)

    def test_empty_message(self):
        self.assertEqual(sanitize_error_message(""), "")


class TestSanitizeDetails(unittest.TestCase):
    """Tests for error detail filtering."""

    def test_keeps_safe_keys(self):
        self.assertEqual(
            sanitize_details({"field": "messages", "service": "openai"}),
            {"field": "messages", "service": "openai"},
        )

    def test_drops_unknown_keys(self):
        self.assertEqual(sanitize_details({"stack": "trace", "field": "messages"}), {"field": "messages"})

    def test_keeps_field_error_lists(self):
        errors = [{"field": "messages", "message": "bad"}]
        self.assertEqual(sanitize_details({"errors": errors}), {"errors": errors})


class TestFormatPydanticErrors(unittest.TestCase):
    """Tests for request validation error formatting."""

    def test_invalid_json(self):
        errors = format_pydantic_errors([{"loc": ("body", 1), "type": "json_invalid", "msg": "JSON decode error"}])
        self.assertEqual(errors[0]["message"], "Request body is not valid JSON")

    def test_non_object_body(self):
        errors = format_pydantic_errors([{"loc": ("body",), "type": "model_attributes_type", "msg": "..."}])
        self.assertEqual(errors, [{"field": "request", "message": "Request body must be a JSON object"}])

    def test_missing_field(self):
        errors = format_pydantic_errors([{"loc": ("body", "messages"), "type": "missing", "msg": "..."}])
        self.assertEqual(errors[0]["message"], "Field 'messages' is required")

    def test_limits_error_count(self):
        errors = format_pydantic_errors([{"loc": ("body", str(i)), "type": "x", "msg": "bad"} for i in range(20)])
        self.assertEqual(len(errors), 10)


class TestCreateErrorResponse(unittest.TestCase):
    """Tests for the error response body."""

    def test_body_format(self):
        response = create_error_response(400, "messages must be an array", "INVALID_ARGUMENT", {"field": "messages"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.body), {
            "success": False,
            "error": "messages must be an array",
            "error_code": "INVALID_ARGUMENT",
            "details": {"field": "messages"},
        })

    def test_omits_empty_details(self):
        response = create_error_response(401, "Unauthenticated", "UNAUTHENTICATED")
        self.assertNotIn("details", json.loads(response.body))


class TestExceptionMapping(unittest.TestCase):
    """Tests for status codes and error codes of the exception hierarchy."""

    def test_authentication_error(self):
        exc = AuthenticationError()
        self.assertEqual((exc.status_code, exc.error_code), (401, ErrorCode.UNAUTHENTICATED))

    def test_invalid_argument_error(self):
        exc = InvalidArgumentError("messages must be an array", field="messages")
        self.assertEqual((exc.status_code, exc.error_code), (400, ErrorCode.INVALID_ARGUMENT))
        self.assertEqual(exc.to_dict(), {
            "success": False,
            "error": "messages must be an array",
            "error_code": "INVALID_ARGUMENT",
            "details": {"field": "messages"},
        })

    def test_internal_family(self):
        for exc in (InternalError(), UpstreamError("x"), UsageStoreError(), TransactionConflictError()):
            with self.subTest(exc=type(exc).__name__):
                self.assertEqual((exc.status_code, exc.error_code), (500, ErrorCode.INTERNAL))

    def test_store_error_hides_internals(self):
        exc = UsageStoreError(operation="reserve", original_error=ConnectionError("10.0.0.5 refused"))
        self.assertEqual(exc.message, "Usage could not be determined")
        self.assertIn("reserve", exc.internal_message)


if __name__ == "__main__":
    unittest.main()
