"""Tests for the database-backed one-time code store."""
from datetime import timedelta

import pytest

from tracker_core.models import OtpChallenge, utcnow
from tracker_core.otp import (
    OtpAttemptsExceeded,
    OtpExpired,
    OtpInvalid,
    OtpNotFound,
    OtpStore,
    generate_code,
    hash_code,
)

EMAIL = "dev@company.com"


def _challenge(db, email=EMAIL):
    db.expire_all()
    return db.query(OtpChallenge).filter(OtpChallenge.email == email).first()


class TestIssue:
    def test_generated_code_is_six_digits(self):
        for _ in range(20):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()

    def test_only_hash_is_stored(self, db):
        code = OtpStore(db).issue(EMAIL)

        challenge = _challenge(db)
        assert challenge.code_hash == hash_code(code)
        assert challenge.code_hash != code
        assert challenge.attempts == 0

    def test_reissue_replaces_pending_challenge(self, db):
        store = OtpStore(db)
        first = store.issue(EMAIL, code="111111")
        second = store.issue(EMAIL, code="222222")

        assert db.query(OtpChallenge).count() == 1
        with pytest.raises(OtpInvalid):
            store.verify(EMAIL, first)
        store.verify(EMAIL, second)

    def test_email_is_case_insensitive(self, db):
        store = OtpStore(db)
        store.issue("Dev@Company.com", code="123456")
        store.verify(EMAIL, "123456")


class TestVerify:
    def test_correct_code_consumes_challenge(self, db):
        store = OtpStore(db)
        store.issue(EMAIL, code="123456")

        store.verify(EMAIL, "123456")

        assert _challenge(db) is None
        with pytest.raises(OtpNotFound):
            store.verify(EMAIL, "123456")

    def test_missing_challenge(self, db):
        with pytest.raises(OtpNotFound) as exc_info:
            OtpStore(db).verify(EMAIL, "123456")
        assert exc_info.value.status_code == 400

    def test_wrong_code_counts_attempt(self, db):
        store = OtpStore(db)
        store.issue(EMAIL, code="123456")

        with pytest.raises(OtpInvalid):
            store.verify(EMAIL, "000000")

        assert _challenge(db).attempts == 1

    def test_expired_challenge_is_removed(self, db):
        store = OtpStore(db)
        store.issue(EMAIL, code="123456")
        challenge = _challenge(db)
        challenge.expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        with pytest.raises(OtpExpired):
            store.verify(EMAIL, "123456")
        assert _challenge(db) is None

    def test_too_many_attempts(self, db):
        store = OtpStore(db, max_attempts=5)
        store.issue(EMAIL, code="123456")

        for _ in range(5):
            with pytest.raises(OtpInvalid):
                store.verify(EMAIL, "000000")

        # Sixth attempt is refused even with the right code
        with pytest.raises(OtpAttemptsExceeded) as exc_info:
            store.verify(EMAIL, "123456")
        assert exc_info.value.status_code == 429
        assert _challenge(db) is None

    def test_purge_expired(self, db):
        store = OtpStore(db)
        store.issue(EMAIL)
        store.issue("other@company.com")
        challenge = _challenge(db)
        challenge.expires_at = utcnow() - timedelta(minutes=1)
        db.commit()

        assert store.purge_expired() == 1
        assert _challenge(db) is None
        assert _challenge(db, "other@company.com") is not None
