from datetime import timedelta
from typing import Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, func
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from ..core.config import settings
from ..core.database import get_db
from ..core.auth import (
    verify_password, create_access_token, get_password_hash,
    generate_reset_token, get_current_account,
)
from ..models.account import Account
from ..services.identity import resolve_student
from ..utils.dates import as_utc, utcnow
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

GENERIC_RESET_MESSAGE = "If an account with that email exists, a password reset link has been sent."


class SignupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Literal["student", "professor"] = "student"
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")


class LoginRequest(BaseModel):
    # Either the username or the email address
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=6)


def account_to_dict(account: Account) -> dict:
    return {
        "id": account.id,
        "username": account.username,
        "email": account.email,
        "role": account.role,
        "firstName": account.first_name,
        "lastName": account.last_name,
        "createdAt": as_utc(account.created_at),
    }


async def link_student_account(db: AsyncSession, account: Account):
    """Link a student account to its roster record; failures never block auth"""
    if account.role != "student":
        return
    try:
        async with db.begin_nested():
            resolution = await resolve_student(db, account)
        logger.info(f"Student link for account {account.id}: {resolution.outcome.value}")
    except Exception as e:
        logger.warning(f"Could not link student record for account {account.id}: {e}")


async def _account_by_token(db: AsyncSession, token: str) -> Account:
    result = await db.execute(select(Account).filter(Account.reset_token == token))
    account = result.scalar_one_or_none()
    if not account:
        raise HTTPException(status_code=404, detail="Invalid reset token")

    expires = as_utc(account.reset_token_expires)
    if expires is None or expires <= utcnow():
        raise HTTPException(status_code=400, detail="Reset token has expired")
    return account


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(request: SignupRequest, db: AsyncSession = Depends(get_db)):
    """
    Create a login account; student accounts are linked to their roster record when one matches
    """
    try:
        logger.info(f"Signup attempt for username: {request.username}")

        existing = await db.execute(
            select(Account.id).filter(
                or_(Account.username == request.username,
                    func.lower(Account.email) == request.email.lower())
            )
        )
        if existing.first():
            raise HTTPException(status_code=400, detail="Username or email already exists")

        account = Account(
            username=request.username,
            email=request.email.lower(),
            password_hash=get_password_hash(request.password),
            role=request.role,
            first_name=request.first_name or None,
            last_name=request.last_name or None,
        )
        db.add(account)
        await db.flush()

        await link_student_account(db, account)

        await db.commit()
        logger.info(f"Account created: {account.username} ({account.role})")
        return {"message": "User created successfully", "user": account_to_dict(account)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Signup error for {request.username}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create user account")


@router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Authenticate by username or email and return an access token
    """
    try:
        logger.info(f"Login attempt for: {request.username}")

        result = await db.execute(
            select(Account).filter(
                or_(Account.username == request.username,
                    func.lower(Account.email) == request.username.lower())
            )
        )
        account = result.scalars().first()

        if not account or not verify_password(request.password, account.password_hash):
            logger.warning(f"Failed login attempt for: {request.username}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid username or password"
            )

        await link_student_account(db, account)
        await db.commit()

        token = create_access_token(data={"sub": account.id, "role": account.role})
        logger.info(f"Login successful: {account.username}")
        return {
            "message": "Login successful",
            "user": account_to_dict(account),
            "access_token": token,
            "token_type": "bearer",
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error for {request.username}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Login failed")


@router.post("/forgot-password")
async def forgot_password(request: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(select(Account).filter(func.lower(Account.email) == request.email.lower()))
        account = result.scalar_one_or_none()

        if not account:
            logger.info(f"Password reset requested for unknown email: {request.email}")
            return {"message": GENERIC_RESET_MESSAGE}

        now = utcnow()
        account.reset_token = generate_reset_token()
        account.reset_token_expires = now + timedelta(minutes=settings.reset_token_expire_minutes)
        account.password_reset_requested_at = now
        await db.commit()
        logger.info(f"Password reset token issued for account {account.id}")

        response = {"message": GENERIC_RESET_MESSAGE}
        if settings.is_development:
            response["resetLink"] = f"{settings.frontend_url}/reset-password?token={account.reset_token}"
        return response

    except Exception as e:
        logger.error(f"Forgot password error: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to process password reset request")


@router.post("/reset-password")
async def reset_password(request: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    try:
        account = await _account_by_token(db, request.token)

        account.password_hash = get_password_hash(request.password)
        account.reset_token = None
        account.reset_token_expires = None
        await db.commit()
        logger.info(f"Password reset for account {account.id}")
        return {"message": "Password has been reset successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Reset password error: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to reset password")


@router.get("/verify-reset-token/{token}")
async def verify_reset_token(token: str, db: AsyncSession = Depends(get_db)):
    try:
        await _account_by_token(db, token)
        return {"message": "Reset token is valid"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Verify reset token error: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify reset token")


@router.get("/me")
async def get_me(account: Account = Depends(get_current_account)):
    return {"user": account_to_dict(account)}
