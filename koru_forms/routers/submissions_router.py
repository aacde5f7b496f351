from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Any, Dict, Literal, Optional, Union

from koru_forms.core.database import get_db, get_session_factory
from koru_forms.core.security import AuthorizedSession, get_current_session
from koru_forms.services.mail_service import MailService, get_mail_service
from koru_forms.services.submission_service import SubmissionService

router = APIRouter(tags=["submissions"])

SUCCESS_MESSAGE = "The form was submitted successfully."

FieldValue = Union[bool, int, float, str, None]


class SubmitFormRequest(BaseModel):
    form_id: str = Field(..., min_length=1)
    website_id: str = Field(..., min_length=1)
    app_id: Optional[str] = None
    data: Dict[str, FieldValue]
    # url, user_agent, ip_address and the honeypot field; left untyped so a
    # filled trap of any type reaches the spam check instead of failing validation
    metadata: Dict[str, Any] = {}


class SubmissionStatusUpdate(BaseModel):
    status: Literal["unread", "read", "archived"]


# Public: posted by the widget
@router.post("/api/forms/submit")
def submit_form(
    payload: SubmitFormRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mail_service: MailService = Depends(get_mail_service),
    session_factory=Depends(get_session_factory),
):
    data = payload.model_dump()

    result = SubmissionService.process_submission(
        data,
        db,
        mail_service,
        background_tasks=background_tasks,
        session_factory=session_factory,
    )

    # spam gets the same answer as a real submission
    return {
        "message": SUCCESS_MESSAGE,
        "submission_id": result.submission.id,
    }


@router.get("/api/forms/{form_id}/submissions")
def get_form_submissions(
    form_id: str,
    include_spam: bool = False,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    return SubmissionService.get_form_submissions(form_id, db, session.website_scope, include_spam=include_spam)


@router.patch("/api/submissions/{submission_id}")
def update_submission_status(
    submission_id: str,
    request: SubmissionStatusUpdate,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    return SubmissionService.update_status(submission_id, request.status, db, session.website_scope)
