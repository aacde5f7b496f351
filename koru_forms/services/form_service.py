import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import false
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from koru_forms.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from koru_forms.core.security import AuthorizedSession
from koru_forms.models.form import Form
from koru_forms.services.koru_client import KoruApiError, KoruClient, installed_app_ids

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "status", "fields_config", "layout_settings", "email_settings")


class FormService:
    @staticmethod
    def _apply_access_filter(query, authorized_websites: Optional[List[str]]):
        # None -> unrestricted (admin / operator)
        if authorized_websites is None:
            return query

        if not authorized_websites:
            return query.filter(false())

        return query.filter(Form.website_id.in_(list(authorized_websites)))

    @staticmethod
    def to_dict(form: Form) -> Dict[str, Any]:
        return {
            "id": form.id,
            "form_id": form.form_id,
            "title": form.title,
            "website_id": form.website_id,
            "status": form.status,
            "is_active": form.is_active,
            "fields_config": form.fields_config or [],
            "layout_settings": form.layout_settings or {},
            "email_settings": form.email_settings or {},
            "created_by": form.created_by,
            "created_at": form.created_at,
            "updated_at": form.updated_at,
        }

    @staticmethod
    def resolve_website(requested: Optional[str], authorized_websites: Optional[List[str]]) -> str:
        if requested:
            if authorized_websites is not None and requested not in authorized_websites:
                raise ForbiddenError(f"Website {requested} is not authorized for this account")
            return requested

        if authorized_websites:
            return authorized_websites[0]

        raise BadRequestError("No authorized website available to bind this form to")

    @staticmethod
    def create_form(data: Dict[str, Any], db: Session, authorized_websites: Optional[List[str]],
                    created_by: Optional[str] = None) -> Dict:
        if db.query(Form).filter(Form.form_id == data["form_id"]).first():
            raise ConflictError(f"A form with form_id {data['form_id']} already exists")

        website_id = FormService.resolve_website(data.get("website_id"), authorized_websites)

        # New forms go live immediately; "draft" is never assigned here.
        form = Form(
            form_id=data["form_id"],
            title=data["title"],
            website_id=website_id,
            status="active",
            is_active=True,
            fields_config=data.get("fields_config") or [],
            layout_settings=data.get("layout_settings") or {},
            email_settings=data.get("email_settings") or {},
            created_by=created_by,
        )
        db.add(form)
        try:
            db.commit()
        except IntegrityError:
            # concurrent create with the same form_id won the unique constraint
            db.rollback()
            raise ConflictError(f"A form with form_id {data['form_id']} already exists")
        db.refresh(form)

        logger.info("Form %s created for website %s", form.form_id, website_id)
        return FormService.to_dict(form)

    @staticmethod
    def get_forms(db: Session, authorized_websites: Optional[List[str]]) -> List[Dict]:
        query = db.query(Form).order_by(Form.created_at.desc())
        query = FormService._apply_access_filter(query, authorized_websites)
        return [FormService.to_dict(f) for f in query.all()]

    @staticmethod
    def get_owned_form(form_id: str, db: Session, authorized_websites: Optional[List[str]]) -> Form:
        query = db.query(Form).filter(Form.id == form_id)
        query = FormService._apply_access_filter(query, authorized_websites)

        form = query.first()
        if not form:
            # absent and not-owned both surface as 404
            raise NotFoundError(f"Form {form_id} not found or access denied")
        return form

    @staticmethod
    def get_form_by_id(form_id: str, db: Session, authorized_websites: Optional[List[str]]) -> Dict:
        return FormService.to_dict(FormService.get_owned_form(form_id, db, authorized_websites))

    @staticmethod
    def update_form(form_id: str, data: Dict[str, Any], db: Session,
                    authorized_websites: Optional[List[str]]) -> Dict:
        FormService.get_owned_form(form_id, db, authorized_websites)

        values = {getattr(Form, k): v for k, v in data.items() if k in UPDATABLE_FIELDS}
        if values:
            query = db.query(Form).filter(Form.id == form_id)
            query = FormService._apply_access_filter(query, authorized_websites)
            updated = query.update(values, synchronize_session=False)
            if updated == 0:
                db.rollback()
                raise InternalError(f"Error updating form {form_id}")
            db.commit()

        db.expire_all()
        return FormService.get_form_by_id(form_id, db, authorized_websites)

    @staticmethod
    def delete_form(form_id: str, db: Session, authorized_websites: Optional[List[str]]) -> Dict:
        form = FormService.get_owned_form(form_id, db, authorized_websites)
        db.delete(form)
        db.commit()
        return {"deleted": True, "id": form_id}

    @staticmethod
    def activate_form(form_id: str, website_id: str, db: Session, client: KoruClient,
                      external_token: Optional[str] = None,
                      authorized_websites: Optional[List[str]] = None) -> Dict:
        if not website_id:
            raise BadRequestError("websiteId is required")

        form = FormService.get_owned_form(form_id, db, authorized_websites)
        if authorized_websites is not None and website_id not in authorized_websites:
            raise ForbiddenError(f"Website {website_id} is not authorized for this account")

        try:
            website = client.get_website(website_id, token=external_token)
        except KoruApiError as e:
            logger.warning("Koru website lookup for %s failed (status %s): %s",
                           website_id, e.status_code, e.message)
            if e.status_code == 401:
                raise UnauthorizedError("Koru Suite token is invalid or expired")
            if e.status_code == 403:
                raise ForbiddenError("Access to this website was denied by Koru Suite")
            raise BadRequestError(e.message or "Could not validate the website with Koru Suite")

        if client.app_id not in installed_app_ids(website):
            raise ForbiddenError("This app is not installed on the selected website")

        form.status = "active"
        form.is_active = True
        form.website_id = website_id
        db.commit()
        db.refresh(form)

        logger.info("Form %s activated on website %s", form.form_id, website_id)
        return FormService.to_dict(form)

    @staticmethod
    def get_public_config(form_id: str, website_id: str, db: Session) -> Dict:
        if not website_id:
            raise BadRequestError("websiteId is required to load the form configuration")

        form = db.query(Form).filter(Form.form_id == form_id).first()
        if not form:
            raise NotFoundError(f"Form configuration {form_id} not found")
        if not form.is_active:
            raise ForbiddenError("This site is no longer registered in Koru Suite")
        if form.status != "active":
            raise ForbiddenError("This form has not been activated")
        if form.website_id != website_id:
            raise ForbiddenError("This site is not authorized to use this form")

        # NOTE: email_settings (admin address included) is exposed to the public widget;
        # kept for widget compatibility, candidate for trimming to the fields the widget renders.
        return {
            "form_id": form.form_id,
            "title": form.title,
            "website_id": form.website_id,
            "fields_config": form.fields_config or [],
            "layout_settings": form.layout_settings or {},
            "email_settings": form.email_settings or {},
        }

    @staticmethod
    def validate_permissions(form_id: str, db: Session, session: AuthorizedSession) -> Dict:
        form = db.query(Form).filter(Form.id == form_id).first()
        if not form:
            raise NotFoundError(f"Form {form_id} not found")

        reason = None
        if not form.is_active:
            reason = "Website is no longer registered in Koru Suite"
        elif form.status != "active":
            reason = "Form is not activated"
        elif not form.website_id:
            reason = "Form is not bound to a website"
        elif session.website_scope is not None and form.website_id not in session.website_scope:
            reason = "Website is not authorized for this account"

        return {
            "valid": reason is None,
            "reason": reason,
            "form_id": form.form_id,
            "website_id": form.website_id,
        }
