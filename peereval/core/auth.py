from datetime import timedelta
import secrets
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from .config import settings
from .database import get_db
from ..models.account import Account
from ..utils.dates import utcnow
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})

    # Ensure 'sub' is a string (JWT requirement)
    if 'sub' in to_encode:
        to_encode['sub'] = str(to_encode['sub'])

    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    logger.info(f"Created token for account {data.get('sub')} with role {data.get('role')}")
    return encoded_jwt


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    token = credentials.credentials

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        account_id_str = payload.get("sub")
        role = payload.get("role")

        if account_id_str is None or role is None:
            logger.error("Token missing required fields")
            raise HTTPException(status_code=401, detail="Invalid token")

        try:
            account_id = int(account_id_str)
        except ValueError:
            logger.error(f"Cannot convert account id '{account_id_str}' to int")
            raise HTTPException(status_code=401, detail="Invalid token")

        return {"account_id": account_id, "role": role}

    except JWTError as e:
        logger.error(f"JWT decode error: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_account(token_data: dict = Depends(verify_token),
                              db: AsyncSession = Depends(get_db)) -> Account:
    result = await db.execute(select(Account).filter(Account.id == token_data["account_id"]))
    account = result.scalar_one_or_none()
    if not account:
        raise HTTPException(status_code=401, detail="Account no longer exists")
    return account


def require_professor(token_data: dict = Depends(verify_token)) -> int:
    if token_data["role"] != "professor":
        logger.error(f"Access denied - role is '{token_data['role']}', expected 'professor'")
        raise HTTPException(status_code=403, detail="Professor access required")
    return token_data["account_id"]
