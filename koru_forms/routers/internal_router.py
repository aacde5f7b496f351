"""
Internal endpoints for scheduled operations.

Protected by the X-Internal-Secret header; called by an external cron.
"""
from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from koru_forms.core.config import settings
from koru_forms.core.database import get_db
from koru_forms.core.exceptions import ForbiddenError, InternalError
from koru_forms.services.koru_client import KoruClient, get_koru_client
from koru_forms.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/api/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    if not settings.INTERNAL_SECRET:
        raise InternalError("INTERNAL_SECRET not configured")
    if x_internal_secret != settings.INTERNAL_SECRET:
        raise ForbiddenError("Invalid internal secret")


@router.post("/reconcile", dependencies=[Depends(verify_internal_secret)])
def reconcile_websites(
    db: Session = Depends(get_db),
    client: KoruClient = Depends(get_koru_client),
):
    """Revalidate every bound website with Koru Suite and flip form availability."""
    return ReconciliationService.run_once(db, client).to_dict()
