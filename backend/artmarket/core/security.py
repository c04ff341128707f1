import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from artmarket.core.config import settings

# CryptContext handles password hashing using bcrypt
# bcrypt is slow by design to prevent brute-force attacks
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from databases without tz support"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    # bcrypt generates a salt per hash, so equal passwords hash differently
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token with issued-at and expiration claims"""
    to_encode = data.copy()

    issued_at = utcnow()
    if expires_delta:
        expire = issued_at + expires_delta
    else:
        expire = issued_at + \
            timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    # 'iat' lets the auth dependency reject tokens issued before a password change
    to_encode.update({"exp": expire, "iat": int(issued_at.timestamp())})

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token"""
    try:
        # Returns None if token is invalid, expired, or tampered with
        return jwt.decode(token, settings.SECRET_KEY,
                          algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def hash_reset_token(token: str) -> str:
    """One-way hash of a password reset token; only the hash is persisted"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_token() -> tuple[str, str]:
    """Return (plaintext_token, token_hash) for a new password reset"""
    token = secrets.token_hex(32)
    return token, hash_reset_token(token)
