from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session
from typing import Any, List, Literal, Optional

from koru_forms.core.database import get_db
from koru_forms.core.exceptions import ForbiddenError
from koru_forms.core.security import AuthorizedSession, get_current_session
from koru_forms.services.embed_code_service import EmbedCodeService
from koru_forms.services.form_service import FormService
from koru_forms.services.koru_client import KoruClient, get_koru_client

router = APIRouter()


class FieldConfigSchema(BaseModel):
    id: str = Field(..., min_length=1)
    type: Literal["text", "email", "textarea", "select", "checkbox", "number"]
    label: str = Field(..., min_length=1)
    required: bool = False
    options: Optional[str] = None  # comma separated, select only
    width: Literal["100%", "50%"] = "100%"


class LayoutSettingsSchema(BaseModel):
    display_type: Literal["Inline", "Floating", "Popup"] = "Inline"
    position: Literal["Bottom-Right", "Bottom-Left"] = "Bottom-Right"
    bubble_icon: Literal["Envelope", "Chat", "User", "Question"] = "Envelope"
    accent_color: str = "#00C896"
    submit_text: str = "Send Message"
    success_msg: str = "Thank you! We will get back to you soon."
    redirect_url: Optional[str] = None


class EmailSettingsSchema(BaseModel):
    admin_email: EmailStr
    subject_line: str = "New web contact: {{Name}}"
    autoresponder: bool = True


class FormCreate(BaseModel):
    form_id: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=200)
    website_id: Optional[str] = None
    fields_config: List[FieldConfigSchema] = []
    layout_settings: LayoutSettingsSchema = LayoutSettingsSchema()
    email_settings: EmailSettingsSchema


class FormUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[Literal["draft", "active", "inactive"]] = None
    fields_config: Optional[List[FieldConfigSchema]] = None
    layout_settings: Optional[LayoutSettingsSchema] = None
    email_settings: Optional[EmailSettingsSchema] = None


class ActivateRequest(BaseModel):
    websiteId: str = Field(..., min_length=1)


class FormResponse(BaseModel):
    id: str
    form_id: str
    title: str
    website_id: Optional[str]
    status: str
    is_active: bool
    fields_config: List[dict]
    layout_settings: dict
    email_settings: dict
    created_by: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None


# Public: used by the widget, no session required
@router.get("/config/{form_id}")
def get_public_config(
    form_id: str,
    websiteId: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return FormService.get_public_config(form_id, websiteId, db)


@router.post("", response_model=FormResponse)
@router.post("/", response_model=FormResponse)
def create_form(
    form: FormCreate,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    return FormService.create_form(form.model_dump(), db, session.website_scope, created_by=session.id)


@router.get("", response_model=List[FormResponse])
@router.get("/", response_model=List[FormResponse])
def get_forms(
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    return FormService.get_forms(db, session.website_scope)


@router.get("/{form_id}", response_model=FormResponse)
def get_form(
    form_id: str,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    return FormService.get_form_by_id(form_id, db, session.website_scope)


@router.patch("/{form_id}", response_model=FormResponse)
def update_form(
    form_id: str,
    form: FormUpdate,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    return FormService.update_form(form_id, form.model_dump(exclude_unset=True), db, session.website_scope)


@router.delete("/{form_id}")
def delete_form(
    form_id: str,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    FormService.delete_form(form_id, db, session.website_scope)
    return {"message": "Form deleted successfully"}


@router.patch("/{form_id}/activate", response_model=FormResponse)
def activate_form(
    form_id: str,
    request: ActivateRequest,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
    client: KoruClient = Depends(get_koru_client),
):
    return FormService.activate_form(
        form_id,
        request.websiteId,
        db,
        client,
        external_token=session.external_token,
        authorized_websites=session.website_scope,
    )


@router.get("/{form_id}/validate-permissions")
def validate_permissions(
    form_id: str,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    return FormService.validate_permissions(form_id, db, session)


@router.get("/{form_id}/embed-code")
def get_embed_code(
    form_id: str,
    db: Session = Depends(get_db),
    session: AuthorizedSession = Depends(get_current_session),
):
    permissions = FormService.validate_permissions(form_id, db, session)
    if not permissions["valid"]:
        raise ForbiddenError(permissions["reason"])

    return {
        "form_id": permissions["form_id"],
        "website_id": permissions["website_id"],
        "embed_code": EmbedCodeService.generate_embed_code(permissions["form_id"], permissions["website_id"]),
    }
