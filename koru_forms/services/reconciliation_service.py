"""
Daily revalidation of every bound website against Koru Suite.

Each website is looked up with the app's machine credentials. A website that
answers 2xx gets its disabled forms switched back on; any failure (404, 403,
timeout...) switches its enabled forms off. Websites are processed one by one
and a failure on one never stops the others.

The job is idempotent and owns no schedule: cron (``run_reconciliation.py``) or
the internal endpoint triggers ``run_once``. In a multi-instance deployment the
caller must make sure only one run happens at a time.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from koru_forms.models.form import Form
from koru_forms.services.koru_client import KoruApiError, KoruClient

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationSummary:
    websites_processed: int = 0
    websites_invalid: int = 0
    forms_deactivated: int = 0
    forms_reactivated: int = 0
    invalid_websites: List[str] = field(default_factory=list)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def to_dict(self):
        return asdict(self)


class ReconciliationService:
    @staticmethod
    def get_website_ids(db: Session) -> List[str]:
        rows = (
            db.query(Form.website_id)
            .filter(Form.website_id.isnot(None))
            .distinct()
            .order_by(Form.website_id)
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def set_website_active(db: Session, website_id: str, active: bool) -> int:
        """Flip is_active for one website's forms; only rows not already in the target state change."""
        updated = (
            db.query(Form)
            .filter(Form.website_id == website_id, Form.is_active.is_(not active))
            .update({Form.is_active: active}, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def check_website(client: KoruClient, website_id: str) -> bool:
        try:
            client.get_website(website_id)
            return True
        except KoruApiError as e:
            logger.warning("Website %s failed validation (status %s): %s", website_id, e.status_code, e.message)
            return False
        except Exception:
            logger.exception("Unexpected error validating website %s", website_id)
            return False

    @staticmethod
    def run_once(db: Session, client: KoruClient) -> ReconciliationSummary:
        summary = ReconciliationSummary(started_at=datetime.now(timezone.utc).isoformat())

        for website_id in ReconciliationService.get_website_ids(db):
            summary.websites_processed += 1
            try:
                if ReconciliationService.check_website(client, website_id):
                    summary.forms_reactivated += ReconciliationService.set_website_active(db, website_id, True)
                else:
                    summary.websites_invalid += 1
                    summary.invalid_websites.append(website_id)
                    summary.forms_deactivated += ReconciliationService.set_website_active(db, website_id, False)
            except Exception:
                db.rollback()
                logger.exception("Failed to apply reconciliation for website %s", website_id)

        summary.finished_at = datetime.now(timezone.utc).isoformat()
        logger.info(
            "Reconciliation finished: %d websites processed, %d invalid, %d forms deactivated, %d reactivated",
            summary.websites_processed,
            summary.websites_invalid,
            summary.forms_deactivated,
            summary.forms_reactivated,
        )
        return summary
