import uuid

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from portal.core.auth import get_current_user
from portal.core.config import settings
from portal.core.database import get_db
from portal.models.profile import Profile
from portal.schemas.auth import (
    LoginRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    RegisterResponse,
    RegistrationStatusResponse,
    TokenResponse,
)
from portal.services.auth import (
    create_access_token,
    create_profile,
    create_refresh_token,
    decode_token,
    get_profile_by_email,
    get_profile_by_id,
    verify_password,
)
from portal.services.profiles import registration_status, update_profile

router = APIRouter()


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400,
        path=f"{settings.API_V1_PREFIX}/auth/refresh",
    )


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    if get_profile_by_email(db, body.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )
    profile = create_profile(
        db,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return RegisterResponse(id=profile.id, email=profile.email)


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, response: Response, db: Session = Depends(get_db)):
    profile = get_profile_by_email(db, body.email)
    if profile is None or not verify_password(body.password, profile.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    _set_refresh_cookie(response, create_refresh_token(profile.id))
    return TokenResponse(access_token=create_access_token(profile.id))


@router.post("/refresh", response_model=TokenResponse)
def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    refresh_token = request.cookies.get("refresh_token")
    if refresh_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token missing",
        )

    try:
        payload = decode_token(refresh_token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token expired",
        )
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    if payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    profile = get_profile_by_id(db, user_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    _set_refresh_cookie(response, create_refresh_token(profile.id))
    return TokenResponse(access_token=create_access_token(profile.id))


@router.get("/profile", response_model=ProfileResponse)
def get_profile(current_user: Profile = Depends(get_current_user)):
    return current_user


@router.put("/profile", response_model=ProfileResponse)
def put_profile(
    body: ProfileUpdateRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=422, detail="No fields to update")
    return update_profile(db, current_user, changes)


@router.get("/registration-status", response_model=RegistrationStatusResponse)
def get_registration_status(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Where the caller stands: documents still missing, awaiting approval, or approved."""
    reg_status, missing = registration_status(db, current_user)
    return RegistrationStatusResponse(
        status=reg_status,
        approved=current_user.approved,
        missing_documents=missing,
    )
