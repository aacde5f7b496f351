from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import Optional

from koru_forms.core.database import get_db
from koru_forms.core.exceptions import BadRequestError
from koru_forms.core.security import AuthorizedSession, get_current_session
from koru_forms.services.auth_service import AuthService, AuthStrategy, get_auth_strategy

router = APIRouter()


class LoginRequest(BaseModel):
    # the dashboard sends either field
    email: Optional[str] = None
    username: Optional[str] = None
    password: str


@router.post("/login")
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    strategy: AuthStrategy = Depends(get_auth_strategy),
):
    email = request.email or request.username
    if not email:
        raise BadRequestError("Email or username is required")
    return AuthService(strategy).login(email, request.password, db)


@router.get("/me")
def me(session: AuthorizedSession = Depends(get_current_session)):
    return {
        "id": session.id,
        "email": session.email,
        "role": session.role,
        "websites": session.websites,
    }
