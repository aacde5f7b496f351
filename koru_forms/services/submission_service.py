import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from koru_forms.core.config import settings
from koru_forms.core.exceptions import BadRequestError, NotFoundError
from koru_forms.models.form import Form
from koru_forms.models.submission import SUBMISSION_STATUSES, Submission
from koru_forms.services.form_service import FormService
from koru_forms.services.mail_service import MailService

logger = logging.getLogger(__name__)

# draft forms still accept test submissions
ACCEPTING_STATUSES = ("active", "draft")


@dataclass
class SubmissionResult:
    """Outcome of the pipeline. ``filtered`` marks a honeypot hit that must still look like success."""

    submission: Submission
    filtered: bool = False


class SubmissionService:
    @staticmethod
    def to_dict(submission: Submission) -> Dict[str, Any]:
        return {
            "id": submission.id,
            "form_id": submission.form_id,
            "website_id": submission.website_id,
            "app_id": submission.app_id,
            "data": submission.data or {},
            "metadata": submission.meta or {},
            "status": submission.status,
            "is_spam": submission.is_spam,
            "mail_log": submission.mail_log,
            "created_at": submission.created_at,
        }

    @staticmethod
    def is_spam(metadata: Dict[str, Any], trap_field: str = None) -> bool:
        """Any non-empty value in the trap field marks the submission as spam, whatever its type."""
        trap = (metadata or {}).get(trap_field or settings.HONEYPOT_FIELD)
        if trap is None:
            return False
        if isinstance(trap, (str, list, dict)):
            return len(trap) > 0
        return True

    @staticmethod
    def process_submission(
        payload: Dict[str, Any],
        db: Session,
        mail_service: MailService,
        background_tasks=None,
        session_factory: Optional[Callable[[], Session]] = None,
    ) -> SubmissionResult:
        form = db.query(Form).filter(
            Form.form_id == payload["form_id"],
            Form.status.in_(ACCEPTING_STATUSES),
        ).first()
        if not form:
            raise NotFoundError(f"Form {payload['form_id']} not found or inactive")

        metadata = payload.get("metadata") or {}
        spam = SubmissionService.is_spam(metadata)

        submission = Submission(
            form_id=form.id,
            website_id=payload["website_id"],
            app_id=payload.get("app_id"),
            data=payload.get("data") or {},
            meta=metadata,
            status="archived" if spam else "unread",
            is_spam=spam,
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)

        if spam:
            logger.info("Spam detected for form %s, submission %s archived", form.form_id, submission.id)
            return SubmissionResult(submission=submission, filtered=True)

        email_settings = dict(form.email_settings or {})
        if background_tasks is not None and session_factory is not None:
            background_tasks.add_task(
                SubmissionService.deliver_task,
                submission.id,
                email_settings,
                submission.data,
                metadata,
                mail_service,
                session_factory,
            )
        else:
            SubmissionService.deliver(db, submission.id, email_settings, submission.data, metadata, mail_service)
            db.refresh(submission)

        return SubmissionResult(submission=submission)

    @staticmethod
    def deliver(db: Session, submission_id: str, email_settings: Dict[str, Any], data: Dict[str, Any],
                metadata: Dict[str, Any], mail_service: MailService) -> Dict[str, Any]:
        """Send the mails and record the outcome on the already persisted submission."""
        try:
            mail_log = mail_service.send_contact_email(email_settings, data, metadata)
        except Exception as e:
            logger.exception("Mail dispatch raised for submission %s", submission_id)
            mail_log = {
                "success": False,
                "error": str(e),
                "errorType": type(e).__name__,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

        db.query(Submission).filter(Submission.id == submission_id).update(
            {Submission.mail_log: mail_log}, synchronize_session=False
        )
        db.commit()
        return mail_log

    @staticmethod
    def deliver_task(submission_id, email_settings, data, metadata, mail_service, session_factory):
        db = session_factory()
        try:
            SubmissionService.deliver(db, submission_id, email_settings, data, metadata, mail_service)
        except Exception:
            logger.exception("Failed to record mail log for submission %s", submission_id)
            db.rollback()
        finally:
            db.close()

    @staticmethod
    def get_form_submissions(form_id: str, db: Session, authorized_websites: Optional[List[str]],
                             include_spam: bool = False) -> List[Dict]:
        form = FormService.get_owned_form(form_id, db, authorized_websites)
        query = db.query(Submission).filter(Submission.form_id == form.id)
        if not include_spam:
            query = query.filter(Submission.is_spam.is_(False))
        rows = query.order_by(Submission.created_at.desc()).all()
        return [SubmissionService.to_dict(s) for s in rows]

    @staticmethod
    def update_status(submission_id: str, new_status: str, db: Session,
                      authorized_websites: Optional[List[str]]) -> Dict:
        if new_status not in SUBMISSION_STATUSES:
            raise BadRequestError(f"Invalid status {new_status}")

        # ownership goes through the parent form
        query = db.query(Submission).join(Form, Submission.form_id == Form.id).filter(Submission.id == submission_id)
        query = FormService._apply_access_filter(query, authorized_websites)

        submission = query.first()
        if not submission:
            raise NotFoundError(f"Submission {submission_id} not found or access denied")

        submission.status = new_status
        db.commit()
        db.refresh(submission)
        return SubmissionService.to_dict(submission)
