# tests/unit/test_errors.py
"""Tests for the error taxonomy and recovery actions."""

from genstudio.errors import (
    ErrorKind,
    GenerationFailure,
    JobInProgressError,
    PersistenceFailure,
    QuotaExceededError,
    RecoveryAction,
    TransportTimeout,
    ValidationError,
)


class TestRecovery:
    def test_each_kind_offers_one_action(self):
        assert ValidationError("bad").recovery is RecoveryAction.TRY_AGAIN
        assert GenerationFailure().recovery is RecoveryAction.TRY_AGAIN
        assert TransportTimeout(600).recovery is RecoveryAction.TRY_AGAIN
        assert PersistenceFailure().recovery is RecoveryAction.RETRY_SAVE
        assert QuotaExceededError().recovery is RecoveryAction.NONE

    def test_kinds(self):
        assert ValidationError("x").kind is ErrorKind.VALIDATION
        assert QuotaExceededError().kind is ErrorKind.QUOTA_EXCEEDED
        assert GenerationFailure().kind is ErrorKind.GENERATION_FAILURE
        assert TransportTimeout().kind is ErrorKind.TRANSPORT_TIMEOUT
        assert PersistenceFailure().kind is ErrorKind.PERSISTENCE_FAILURE
        assert JobInProgressError().kind is ErrorKind.JOB_IN_PROGRESS


class TestMessages:
    def test_validation_from_fields_uses_first_message(self):
        err = ValidationError.from_fields({"file": "Too big", "name": "Missing"})
        assert err.message == "Too big"
        assert err.field_errors == {"file": "Too big", "name": "Missing"}

    def test_quota_message_mentions_reset_time(self):
        err = QuotaExceededError(resets_at="2026-10-20T00:00:00Z")
        assert "2026-10-20T00:00:00Z" in err.message
        assert err.to_dict()["resets_at"] == "2026-10-20T00:00:00Z"
        assert err.to_dict()["remaining"] == 0

    def test_known_error_code_gets_friendly_text(self):
        err = GenerationFailure(message="raw upstream text", error_code="CONTENT_POLICY_VIOLATION")
        assert "violates our policy" in err.message
        assert err.backend_message == "raw upstream text"

    def test_unknown_error_code_keeps_backend_message(self):
        err = GenerationFailure(message="Model overloaded", error_code="SOMETHING_NEW", status_code=500)
        assert err.message == "Model overloaded"
        assert err.to_dict()["status_code"] == 500

    def test_timeout_never_claims_quota_was_not_spent(self):
        err = TransportTimeout(timeout_seconds=120)
        assert "may have used" in err.message
        assert "not used" not in err.message

    def test_busy_refusal(self):
        err = JobInProgressError("abc123def456")
        assert err.holder == "abc123def456"
        assert err.recovery is RecoveryAction.NONE
        assert err.kind is not ErrorKind.VALIDATION
        assert err.to_dict()["kind"] == "job_in_progress"
