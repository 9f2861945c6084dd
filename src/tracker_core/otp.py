"""One-time login codes backed by the database.

Challenges live in the otp_challenges table rather than process memory, so
they survive restarts and are shared between workers. Attempt counting uses
a single UPDATE so concurrent guesses cannot reuse the same attempt.
"""
import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .models import OtpChallenge, utcnow

logger = logging.getLogger("tracker-core.otp")

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_ATTEMPTS = 5


class OtpError(Exception):
    """Base class for OTP verification failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class OtpNotFound(OtpError):
    def __init__(self):
        super().__init__("OTP expired or not requested. Please request a new one.")


class OtpExpired(OtpError):
    def __init__(self):
        super().__init__("OTP has expired. Please request a new one.")


class OtpAttemptsExceeded(OtpError):
    status_code = 429

    def __init__(self):
        super().__init__("Too many attempts. Please request a new OTP.")


class OtpInvalid(OtpError):
    def __init__(self):
        super().__init__("Invalid OTP. Please try again.")


def generate_code() -> str:
    """Six-digit numeric code."""
    return str(100000 + secrets.randbelow(900000))


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


class OtpStore:
    """Keyed, expiring, attempt-limited store of login codes."""

    def __init__(
        self,
        db: Session,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_attempts = max_attempts

    def _get(self, email: str) -> Optional[OtpChallenge]:
        return self.db.query(OtpChallenge).filter(OtpChallenge.email == email.lower()).first()

    def _delete(self, challenge: OtpChallenge) -> None:
        self.db.delete(challenge)
        self.db.commit()

    def issue(self, email: str, code: Optional[str] = None) -> str:
        """
        Create a fresh challenge for email, replacing any pending one.

        Args:
            email: Login email (case-insensitive key)
            code: Explicit code; generated when omitted

        Returns:
            The plain code, to be handed to the delivery channel
        """
        self.purge_expired()
        code = code or generate_code()

        existing = self._get(email)
        if existing:
            self.db.delete(existing)
            self.db.flush()

        self.db.add(
            OtpChallenge(
                email=email.lower(),
                code_hash=hash_code(code),
                expires_at=utcnow() + self.ttl,
                attempts=0,
            )
        )
        self.db.commit()
        logger.debug(f"Issued OTP challenge for {email}")
        return code

    def verify(self, email: str, code: str) -> None:
        """
        Check a submitted code and consume the challenge on success.

        Raises:
            OtpNotFound: No pending challenge for email
            OtpExpired: Challenge past its expiry (challenge is removed)
            OtpAttemptsExceeded: Too many attempts (challenge is removed)
            OtpInvalid: Wrong code; the attempt is counted
        """
        challenge = self._get(email)
        if challenge is None:
            raise OtpNotFound()

        if challenge.expires_at < utcnow():
            self._delete(challenge)
            raise OtpExpired()

        self.db.query(OtpChallenge).filter(OtpChallenge.id == challenge.id).update(
            {OtpChallenge.attempts: OtpChallenge.attempts + 1},
            synchronize_session=False,
        )
        self.db.commit()
        self.db.refresh(challenge)

        if challenge.attempts > self.max_attempts:
            logger.warning(f"OTP attempts exceeded for {email}")
            self._delete(challenge)
            raise OtpAttemptsExceeded()

        if not hmac.compare_digest(challenge.code_hash, hash_code(code)):
            raise OtpInvalid()

        self._delete(challenge)
        logger.debug(f"OTP verified for {email}")

    def purge_expired(self) -> int:
        """Delete every expired challenge. Returns the number removed."""
        removed = (
            self.db.query(OtpChallenge)
            .filter(OtpChallenge.expires_at < utcnow())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if removed:
            logger.debug(f"Purged {removed} expired OTP challenges")
        return removed
