from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from core.config import settings
from db.session import get_db
from models.user import User

logger = logging.getLogger(__name__)

ADMIN_ROLE = "administrator"
MEMBER_ROLE = "member"
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def _init_pwd_context():
    """Pick a password backend according to PASSWORD_SCHEME.

    'auto' tries bcrypt, then argon2. Tests run with plaintext.
    """
    if settings.TESTING:
        return CryptContext(schemes=["plaintext"], deprecated="auto")

    scheme = (settings.PASSWORD_SCHEME or "auto").lower()
    if scheme == "plaintext":
        return CryptContext(schemes=["plaintext"], deprecated="auto")
    candidates = ["bcrypt", "argon2"] if scheme == "auto" else [scheme]

    for name in candidates:
        try:
            ctx = CryptContext(schemes=[name], deprecated="auto")
            # smoke-test to force backend finalization
            ctx.hash("__passlib_init_check__")
            logger.debug("Using password scheme: %s", name)
            return ctx
        except Exception as e:
            logger.debug("Password scheme %s unavailable: %r", name, e)

    logger.warning("No password backend for PASSWORD_SCHEME=%s; falling back to plaintext", scheme)
    return CryptContext(schemes=["plaintext"], deprecated="auto")


pwd_context = _init_pwd_context()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def _truncate(password) -> str:
    b = str(password).encode("utf-8")[:MAX_PASSWORD_BYTES]
    return b.decode("utf-8", errors="ignore")


def hash_password(password: str) -> str:
    return pwd_context.hash(_truncate(password))


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(_truncate(plain), hashed)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str):
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    payload = decode_token(token)
    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(current_user: User = Depends(get_current_user)):
    if current_user.role != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return current_user
