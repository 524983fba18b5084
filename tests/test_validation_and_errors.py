"""
Validation helpers, typed errors and the shared error response shape.
"""
import json

import pytest
from fastapi import HTTPException

from backend.app.utils.error_handlers import (
    DuplicateSubmissionError,
    NotificationFailedError,
    QuotaExceededError,
    create_error_response,
    get_error_message,
    handle_database_error,
)
from backend.app.utils.jwt import create_access_token, decode_access_token
from backend.app.utils.validation import (
    sanitize_filename,
    validate_email,
    validate_skills_field,
    validate_string_field,
)


class TestValidation:
    def test_valid_email_is_normalized(self):
        assert validate_email("  TEST@EXAMPLE.COM  ") == "test@example.com"

    def test_invalid_email(self):
        with pytest.raises(HTTPException) as exc:
            validate_email("invalid")
        assert exc.value.status_code == 400

    def test_string_field_trims_and_checks_length(self):
        assert validate_string_field("  test  ", "Field") == "test"
        with pytest.raises(HTTPException):
            validate_string_field("A", "Field", min_length=2)
        with pytest.raises(HTTPException):
            validate_string_field(None, "Field", required=True)
        assert validate_string_field(None, "Field", required=False) is None

    def test_skills_field_accepts_list_or_csv(self):
        assert validate_skills_field(["Python", " SQL ", ""], "Skills") == "Python, SQL"
        assert validate_skills_field("Python,  SQL,", "Skills") == "Python, SQL"
        assert validate_skills_field([], "Skills") is None
        with pytest.raises(HTTPException):
            validate_skills_field(42, "Skills")

    def test_sanitize_filename(self):
        assert sanitize_filename("../../etc/passwd") == "____etc_passwd"
        assert sanitize_filename("cv.pdf") == "cv.pdf"
        with pytest.raises(HTTPException):
            sanitize_filename("")


class TestErrors:
    def test_quota_error_carries_counts(self):
        err = QuotaExceededError(sent_today=10, limit=10)
        assert err.status_code == 429
        assert err.code == "quota_exceeded"
        assert err.details == {"emailsSentToday": 10, "emailsRemaining": 0, "limit": 10}

    def test_notification_error_message(self):
        err = NotificationFailedError("boom")
        assert err.message == "Failed to send email: boom"
        assert err.transport_message == "boom"

    def test_duplicate_default_message(self):
        assert DuplicateSubmissionError().message == get_error_message("already_applied")

    def test_unknown_message_key_falls_back(self):
        assert get_error_message("nope") == get_error_message("server_error")

    def test_error_response_shape(self):
        resp = create_error_response(409, "Already", details={"a": 1}, code="duplicate_submission")
        assert resp.status_code == 409
        assert json.loads(resp.body) == {
            "success": False,
            "error": "Already",
            "code": "duplicate_submission",
            "details": {"a": 1},
        }

    def test_database_error_mapping(self):
        assert handle_database_error(Exception("UNIQUE constraint failed"), "insert").status_code == 409
        assert handle_database_error(Exception("something odd"), "insert").status_code == 500


class TestTokens:
    def test_round_trip(self):
        token = create_access_token({"sub": "5", "role": "student"})
        claims = decode_access_token(token)
        assert claims["sub"] == "5"
        assert claims["role"] == "student"

    def test_garbage_token(self):
        assert decode_access_token("not-a-token") is None
