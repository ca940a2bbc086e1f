"""
Reminder Routes
Ops trigger for the scheduled deadline/hearing reminder run
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..email_service import NotificationSender, get_notification_sender
from ..schemas import ScheduledRunSummary
from ..services.reminder_scheduler import run_scheduled_reminders
from ..utils.dates import utcnow
from ..webhook_security import verify_cron_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["reminders"])


@router.post("/run", response_model=ScheduledRunSummary)
async def run_reminders(
    _: None = Depends(verify_cron_request),
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    """
    Run deadline and hearing reminders now.
    Partial failures are reported through the error counts.
    """
    try:
        summary = await run_scheduled_reminders(db, sender)
        logger.info(
            f"📊 Reminder run via API: {summary.total_sent} sent, {summary.total_errors} errors"
        )
        return summary
    except Exception as e:
        logger.error(f"❌ Scheduled reminder run failed: {str(e)}")
        logger.exception("Full reminder run error traceback:")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(e), "timestamp": utcnow().isoformat()},
        )
