# Authentication Utilities

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from dotenv import load_dotenv
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from logging_config import logger
from models import TokenData

load_dotenv()

# --- Configuration ---
# Generate a secret key using: openssl rand -hex 32
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-env-projecttrack-dev-secret")  # Default for dev only
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))  # 1 day

# --- Password Hashing ---
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verifies a plain password against a hashed password."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password.encode('utf-8'), hashed_password)


def get_password_hash(password: str) -> str:
    """Hashes a plain password."""
    return pwd_context.hash(password.encode('utf-8'))


# --- JWT Token Handling ---
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Creates a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[TokenData]:
    """Verifies a JWT token and returns the payload (TokenData)."""
    try:
        # jwt.decode checks expiration and raises JWTError if expired
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])

        email = payload.get("sub")
        if not email:
            logger.warning("Token missing 'sub' claim")
            return None

        return TokenData(email=email, role=payload.get("role"))
    except JWTError as e:
        logger.info(f"JWT Error: {e}")
        return None
    except ValidationError as e:
        logger.warning(f"Token payload validation error: {e}")
        return None
