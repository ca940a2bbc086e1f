"""
Email Webhook Routes
Receives inbound replies (inbound parse) and delivery events from the email provider
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.reply_processor import (
    InboundEmail,
    MatterNotFoundError,
    ReplyContextError,
    parse_headers_field,
    process_email_events,
    process_inbound_email,
)
from ..webhook_security import verify_email_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook/email", tags=["email-webhooks"])


def _form_value(form, name: str) -> str:
    value = form.get(name)
    return value if isinstance(value, str) else ""


@router.post("/inbound")
async def handle_inbound_email(
    request: Request, db: Session = Depends(get_db), _: None = Depends(verify_email_webhook)
):
    """
    Handle an inbound reply posted as multipart form data.
    Fields: to, from, subject, text, html, headers (JSON string)
    """
    try:
        form = await request.form()
        inbound = InboundEmail(
            to=_form_value(form, "to"),
            from_address=_form_value(form, "from"),
            subject=_form_value(form, "subject"),
            text=_form_value(form, "text"),
            html=_form_value(form, "html"),
            headers=parse_headers_field(_form_value(form, "headers")),
        )

        result = process_inbound_email(db, inbound)
        return result.model_dump()

    except ReplyContextError:
        return JSONResponse(status_code=400, content={"error": "Invalid reply context"})
    except MatterNotFoundError as e:
        logger.warning(f"⚠️ {e}")
        return JSONResponse(status_code=404, content={"error": "Matter not found"})
    except Exception as e:
        logger.error(f"❌ Error processing inbound email: {str(e)}")
        logger.exception("Full inbound email error traceback:")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process email", "details": str(e)},
        )


@router.post("/events")
async def handle_email_events(
    request: Request, db: Session = Depends(get_db), _: None = Depends(verify_email_webhook)
):
    """Handle a JSON array of delivery events (delivered, open, click, bounce, dropped...)"""
    try:
        events = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        events = None

    if not isinstance(events, list):
        return JSONResponse(status_code=400, content={"error": "Invalid event data"})

    logger.debug(f"📥 Received {len(events)} email event(s)")

    try:
        processed = process_email_events(db, events)
        return {"success": True, "processed": processed}
    except Exception as e:
        logger.error(f"❌ Error processing email events: {str(e)}")
        logger.exception("Full email event error traceback:")
        db.rollback()
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process events", "details": str(e)},
        )
