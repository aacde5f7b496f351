import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from koru_forms.core.config import settings
from koru_forms.core.exceptions import BadRequestError, UnauthorizedError
from koru_forms.core.security import (
    AuthorizedSession,
    create_session_token,
    get_password_hash,
    verify_password,
)
from koru_forms.models.user import User
from koru_forms.services.koru_client import KoruApiError, KoruClient, normalize_website_ids

logger = logging.getLogger(__name__)


class AuthStrategy:
    """Resolves credentials to an AuthorizedSession. One variant is chosen at startup."""

    name = "base"

    def authenticate(self, email: str, password: str, db: Session) -> AuthorizedSession:
        raise NotImplementedError


def _session_for(user: User) -> AuthorizedSession:
    return AuthorizedSession(
        id=str(user.id),
        email=user.email,
        role=user.role or "user",
        websites=list(user.websites or []),
        external_token=user.koru_token,
    )


class MockAuthStrategy(AuthStrategy):
    """Offline development: no external calls, every user gets the same fake website."""

    name = "mock"

    def __init__(self, website_id: str = None):
        self.website_id = website_id or settings.KORU_MOCK_WEBSITE_ID

    def authenticate(self, email, password, db):
        user = db.query(User).filter(User.email == email).first()
        if not user:
            user = User(
                email=email,
                name=email.split("@")[0],
                hashed_password=get_password_hash(password),
                role="user",
            )
            db.add(user)
        user.websites = [self.website_id]
        db.commit()
        db.refresh(user)
        return _session_for(user)


class LocalAuthStrategy(AuthStrategy):
    """Password check against the local user table; websites come from the cached grant."""

    name = "local"

    def authenticate(self, email, password, db):
        user = db.query(User).filter(User.email == email).first()
        if not user or not user.hashed_password or not verify_password(password, user.hashed_password):
            raise UnauthorizedError("Invalid credentials")
        return _session_for(user)


class DelegatedAuthStrategy(AuthStrategy):
    """Forwards credentials to the Koru Suite Identity Broker and caches the grant locally."""

    name = "delegated"

    def __init__(self, client: KoruClient = None):
        self.client = client or KoruClient()

    def authenticate(self, email, password, db):
        try:
            koru_data = self.client.login(email, password)
        except KoruApiError as e:
            logger.warning("Koru login failed for %s (status %s): %s", email, e.status_code, e.message)
            if e.status_code == 401:
                raise UnauthorizedError(e.message or "Invalid credentials in Koru Suite")
            if e.status_code == 403:
                raise UnauthorizedError("Access denied: your user has no access to this app")
            raise BadRequestError(e.message or "Connection error with the Koru Identity Broker")

        koru_user = koru_data.get("user") or {}
        koru_email = koru_user.get("email") or email
        websites = normalize_website_ids(koru_data.get("websites"))

        user = self.upsert_user(
            db,
            email=koru_email,
            name=koru_user.get("name"),
            koru_role=koru_user.get("role"),
            koru_id=koru_user.get("id"),
            koru_token=koru_data.get("access_token"),
            websites=websites,
        )
        return _session_for(user)

    @staticmethod
    def upsert_user(db: Session, email: str, name: Optional[str], koru_role: Optional[str],
                    koru_id, koru_token: Optional[str], websites: List[str]) -> User:
        """Create or refresh the local user from a Koru login.

        The Koru role is stored for display only. ``User.role`` decides whether a
        session is unrestricted and is only ever set locally.
        """
        user = db.query(User).filter(User.email == email).first()
        if not user:
            user = User(email=email, role="user")
            db.add(user)
        user.koru_role = koru_role
        user.name = name
        user.koru_id = str(koru_id) if koru_id is not None else None
        user.koru_token = koru_token
        user.websites = websites
        db.commit()
        db.refresh(user)
        return user


def build_auth_strategy(config=None) -> AuthStrategy:
    """Pick the login mode: mock flag first, then local when no Koru app credentials exist."""
    config = config or settings
    if config.KORU_MOCK_AUTH:
        strategy = MockAuthStrategy(config.KORU_MOCK_WEBSITE_ID)
    elif not config.has_koru_credentials:
        strategy = LocalAuthStrategy()
    else:
        strategy = DelegatedAuthStrategy(
            KoruClient(
                base_url=config.KORU_API_URL,
                app_id=config.KORU_APP_ID,
                app_secret=config.KORU_APP_SECRET,
                timeout=config.KORU_HTTP_TIMEOUT,
            )
        )
    logger.info("Login mode: %s", strategy.name)
    return strategy


_strategy: Optional[AuthStrategy] = None


def get_auth_strategy() -> AuthStrategy:
    global _strategy
    if _strategy is None:
        _strategy = build_auth_strategy()
    return _strategy


class AuthService:
    def __init__(self, strategy: AuthStrategy):
        self.strategy = strategy

    def login(self, email: str, password: str, db: Session) -> Dict:
        if not email or not password:
            raise BadRequestError("Email and password are required")

        session = self.strategy.authenticate(email, password, db)
        token = create_session_token(session)
        user = db.query(User).filter(User.id == session.id).first()

        return {
            "access_token": token,
            "token_type": "bearer",
            "user": {
                "id": session.id,
                "email": session.email,
                "name": user.name if user else None,
                "role": session.role,
            },
            "websites": session.websites,
        }
