from .auth_service import AuthService
from .form_service import FormService
from .submission_service import SubmissionService
from .mail_service import MailService
from .reconciliation_service import ReconciliationService
from .embed_code_service import EmbedCodeService

__all__ = ["AuthService", "FormService", "SubmissionService", "MailService", "ReconciliationService", "EmbedCodeService"]
