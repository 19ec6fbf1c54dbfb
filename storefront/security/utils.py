from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
import jwt, uuid
from typing import Tuple
from storefront.core.config import settings

pwd_ctx = CryptContext(schemes=['pbkdf2_sha256'], deprecated='auto')

def hash_password(p: str) -> str: return pwd_ctx.hash(p)

def verify_password(p: str, h: str) -> bool: return pwd_ctx.verify(p, h)

def now_utc() -> datetime: return datetime.now(timezone.utc).replace(tzinfo=None)

def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def generate_license_key() -> str: return f"LIC-{str(uuid.uuid4()).upper()}"

def create_access_token(user_id: int, email: str, role: str) -> Tuple[str, datetime]:
    exp = now_utc() + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRES_SECONDS)
    payload = {'sub': email, 'uid': user_id, 'role': role, 'exp': exp, 'type': 'access'}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), exp

def decode_token(token: str):
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
