"""Authentication routes"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from authcore.api.deps import AuthContext, get_auth_context, get_client_fingerprint
from authcore.config import settings
from authcore.core.database import get_db
from authcore.core.exceptions import ResourceNotFoundError
from authcore.schemas.user import (
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    SessionResponse,
    TokenResponse,
    UserResponse,
)
from authcore.services.origin_guard import OriginFingerprint
from authcore.services.rate_limiter import rate_limiter
from authcore.services.session_service import SessionTokens, session_service
from authcore.services.user_service import user_service

router = APIRouter()


def _token_response(tokens: SessionTokens) -> TokenResponse:
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type="bearer",
        expires_in=tokens.expires_in,
        refresh_expires_in=tokens.refresh_expires_in,
        user=UserResponse.model_validate(tokens.user),
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Register a new identity. It starts with the USER role only.

    Returns:
        Created user
    """
    user = user_service.register_user(db, payload)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: LoginRequest,
    fingerprint: OriginFingerprint = Depends(get_client_fingerprint),
    db: Session = Depends(get_db)
):
    """
    Login endpoint - authenticate and return an access/refresh token pair

    Args:
        credentials: Email and password
        db: Database session

    Returns:
        Token pair and user info
    """
    subject = f"{fingerprint.ip_address or 'unknown'}:{credentials.email.strip().lower()}"
    rate_limiter.enforce(
        "login", subject, settings.LOGIN_RATE_LIMIT_PER_MINUTE, settings.LOGIN_RATE_LIMIT_PER_HOUR
    )

    tokens = session_service.login(db, credentials, fingerprint)
    return _token_response(tokens)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    req: RefreshTokenRequest,
    fingerprint: OriginFingerprint = Depends(get_client_fingerprint),
    db: Session = Depends(get_db),
):
    """
    Exchange a refresh token for a new pair. The presented token is consumed.
    """
    rate_limiter.enforce(
        "refresh",
        fingerprint.ip_address or "unknown",
        settings.REFRESH_RATE_LIMIT_PER_MINUTE,
        settings.REFRESH_RATE_LIMIT_PER_HOUR,
    )

    tokens = session_service.refresh(db, req.refresh_token, fingerprint)
    return _token_response(tokens)


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(
    body: Optional[LogoutRequest] = None,
    db: Session = Depends(get_db)
):
    """
    Revoke the given refresh token. Always succeeds.
    """
    session_service.logout(db, body.refresh_token if body else None)
    return {
        "success": True,
        "message": "Logged out successfully",
    }


@router.post("/logout-all", status_code=status.HTTP_200_OK)
def logout_all(
    fingerprint: OriginFingerprint = Depends(get_client_fingerprint),
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Sign the caller out on every device"""
    count = session_service.revoke_all_sessions(
        db,
        ctx.user_id,
        reason="You signed out of all devices",
        actor_id=ctx.user_id,
        ip_address=fingerprint.ip_address,
    )
    return {
        "success": True,
        "message": "Logged out from all devices",
        "revoked_count": count,
    }


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    user = user_service.get_user_by_id(db, ctx.user_id)
    if user is None:
        raise ResourceNotFoundError("User")
    return UserResponse.model_validate(user)


@router.get("/sessions", response_model=List[SessionResponse])
def list_sessions(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Active refresh sessions of the caller, newest first"""
    return [SessionResponse.model_validate(t) for t in session_service.list_sessions(db, ctx.user_id)]
