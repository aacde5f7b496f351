import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["KORU_MOCK_AUTH"] = "false"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

from koru_forms.core.database import get_db, get_session_factory
from koru_forms.core.security import AuthorizedSession, create_session_token
from koru_forms.main import app
from koru_forms.models import Base, Form
from koru_forms.services.koru_client import KoruApiError, get_koru_client
from koru_forms.services.mail_service import MailService, MailTransportError, get_mail_service

APP_ID = "koru-forms-app"


class FakeKoruClient:
    """Stands in for the Identity Broker. ``websites`` maps id -> payload, or -> status code to fail with."""

    def __init__(self, websites=None, login_response=None, login_error=None):
        self.app_id = APP_ID
        self.websites = websites if websites is not None else {}
        self.login_response = login_response
        self.login_error = login_error
        self.website_calls = []

    def get_website(self, website_id, token=None):
        self.website_calls.append((website_id, token))
        outcome = self.websites.get(website_id, 404)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            raise KoruApiError(f"status {outcome}", status_code=outcome)
        return outcome

    def login(self, username, password):
        if self.login_error:
            raise self.login_error
        return self.login_response


class FakeTransport:
    def __init__(self, method, fail=False):
        self.method = method
        self.fail = fail
        self.sent = []

    def send(self, message):
        if self.fail:
            raise MailTransportError(f"{self.method} down")
        self.sent.append(message)
        if self.method == "smtp":
            return {"method": self.method, "messageId": f"<{len(self.sent)}@test>"}
        return {"method": self.method, "statusCode": 202}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def koru_client():
    return FakeKoruClient()


@pytest.fixture
def primary():
    return FakeTransport("smtp")


@pytest.fixture
def fallback():
    return FakeTransport("sendgrid")


@pytest.fixture
def mail_service(primary, fallback):
    return MailService(primary=primary, fallback=fallback)


@pytest.fixture
def client(db, session_factory, koru_client, mail_service):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_koru_client] = lambda: koru_client
    app.dependency_overrides[get_mail_service] = lambda: mail_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(websites=("W1",), role="user", external_token="koru-token"):
        token = create_session_token(
            AuthorizedSession(
                id="user-1",
                email="owner@example.com",
                role=role,
                websites=list(websites),
                external_token=external_token,
            )
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_form(db):
    def _make(form_id="koru-x", website_id="W1", status="active", is_active=True, **kwargs):
        form = Form(
            form_id=form_id,
            title=kwargs.pop("title", "Contact"),
            website_id=website_id,
            status=status,
            is_active=is_active,
            fields_config=kwargs.pop("fields_config", [
                {"id": "Name", "type": "text", "label": "Name", "required": True, "width": "100%"},
                {"id": "Email", "type": "email", "label": "Email", "required": True, "width": "100%"},
            ]),
            layout_settings=kwargs.pop("layout_settings", {"display_type": "Inline"}),
            email_settings=kwargs.pop("email_settings", {
                "admin_email": "admin@example.com",
                "subject_line": "New web contact: {{Name}}",
                "autoresponder": True,
            }),
            **kwargs,
        )
        db.add(form)
        db.commit()
        db.refresh(form)
        return form

    return _make
