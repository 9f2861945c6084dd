"""Login via password plus a one-time code."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tracker_core import crud, models, schemas
from tracker_core.otp import OtpError, OtpStore

from ..config import get_settings
from ..database import get_db
from ..dependencies import get_current_user
from ..security import TokenConfigurationError, create_access_token, verify_password

logger = logging.getLogger("tracker-core.auth")

router = APIRouter(tags=["auth"])


def _otp_store(db: Session) -> OtpStore:
    settings = get_settings()
    return OtpStore(
        db,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
    )


def _authenticate(db: Session, email: str, password: str) -> models.User:
    """Check credentials, raising 401 with the same message for every failure."""
    user = crud.get_user_by_email(db, email)
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        logger.warning(f"Failed credential check for {email}")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return user


@router.post("/send-otp", response_model=schemas.OtpSentResponse)
def send_otp(
    request: schemas.OtpRequest,
    db: Session = Depends(get_db),
):
    """
    Verify credentials and issue a one-time login code.

    The code is written to the server log; there is no mail delivery.
    """
    user = _authenticate(db, request.email, request.password)
    code = _otp_store(db).issue(user.email)
    logger.info(f"OTP for {user.email}: {code}")
    return schemas.OtpSentResponse()


@router.post("/verify-login", response_model=schemas.LoginResponse)
def verify_login(
    request: schemas.OtpVerifyRequest,
    db: Session = Depends(get_db),
):
    """
    Exchange credentials and a one-time code for an access token.

    - 400: code missing, expired or wrong
    - 429: too many attempts; a new code must be requested
    - 503: SECRET_KEY is not configured
    """
    user = _authenticate(db, request.email, request.password)
    try:
        _otp_store(db).verify(user.email, request.otp)
    except OtpError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    try:
        access_token = create_access_token(user.id)
    except TokenConfigurationError as e:
        logger.error(f"Cannot issue token for user {user.id}: {e}")
        raise HTTPException(status_code=503, detail="Login is not available") from e

    logger.info(f"User {user.id} logged in")
    return schemas.LoginResponse(
        access_token=access_token,
        user=schemas.UserResponse.model_validate(user),
    )


@router.get("/me", response_model=schemas.UserResponse)
def me(user: models.User = Depends(get_current_user)):
    """Return the authenticated user."""
    return user
