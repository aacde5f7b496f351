"""Run the Koru Suite website reconciliation once. Schedule daily with cron."""
import logging
import os
import sys

from dotenv import load_dotenv

sys.path.append(os.getcwd())
load_dotenv()

from koru_forms.core.database import SessionLocal, init_db
from koru_forms.services.koru_client import KoruClient
from koru_forms.services.reconciliation_service import ReconciliationService

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

if __name__ == "__main__":
    init_db()
    db = SessionLocal()
    try:
        summary = ReconciliationService.run_once(db, KoruClient())
        print(summary.to_dict())
    finally:
        db.close()
