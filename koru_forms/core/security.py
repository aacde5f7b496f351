from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from koru_forms.core.config import settings
from koru_forms.core.exceptions import UnauthorizedError

# pbkdf2 for new hashes; bcrypt kept so hashes seeded by older tooling still verify
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"
ADMIN_ROLES = ("admin", "superadmin")


@dataclass
class AuthorizedSession:
    id: str
    email: str
    role: str = "user"
    websites: List[str] = field(default_factory=list)
    external_token: Optional[str] = None

    @property
    def website_scope(self) -> Optional[List[str]]:
        """Websites this session may act on; None means unrestricted (admin path)."""
        if self.role in ADMIN_ROLES:
            return None
        return list(self.websites)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


def create_session_token(session: AuthorizedSession) -> str:
    return create_access_token(
        data={
            "sub": session.email,
            "id": session.id,
            "role": session.role,
            "websites": session.websites,
            "ext_token": session.external_token,
        }
    )


def decode_session_token(token: str) -> AuthorizedSession:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")

    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    email = payload.get("sub")
    if not email or not payload.get("id"):
        raise UnauthorizedError("Invalid token")

    return AuthorizedSession(
        id=str(payload["id"]),
        email=email,
        role=payload.get("role") or "user",
        websites=[str(w) for w in payload.get("websites") or []],
        external_token=payload.get("ext_token"),
    )


def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthorizedSession:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")
    return decode_session_token(credentials.credentials)
