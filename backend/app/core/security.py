import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt

from app.core.config import settings

SESSION_COOKIE_NAME = "flux_session"


def hash_password(password: str) -> str:
    """Encode a password the way the game server stores it in ``login.user_pass``."""
    if settings.use_md5_passwords:
        return hashlib.md5(password.encode("utf-8")).hexdigest()
    return password


def verify_password(password: str, stored_password: str) -> bool:
    return hmac.compare_digest(hash_password(password).encode("utf-8"), (stored_password or "").encode("utf-8"))


def create_session_token(*, account_id: int, userid: str, server_name: str, level: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.session_exp_minutes)
    to_encode = {
        "sub": str(account_id),
        "type": "session",
        "userid": userid,
        "server": server_name,
        "level": level,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
