"""
Inbound Reply Processor
Turns provider-pushed replies into Communication records on the right matter
and records delivery events from the provider's event webhook.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..database import get_schema_features
from ..email_context import ReplyContext, decode_headers, decode_reply_address, get_header
from ..models import Communication, Deadline, DeadlineNote, EmailEvent, Hearing, Matter
from ..reply_parser import ReplyCleaner, default_cleaner
from ..schemas import EmailEventPayload, InboundReplyResponse, ReplyContextResponse
from ..utils.dates import utcnow
from ..utils.sanitization import html_to_text
from .notification_service import notify_delivery_failure, notify_email_reply

logger = logging.getLogger(__name__)

FAILURE_EVENTS = {"bounce", "dropped"}


class ReplyContextError(Exception):
    """No matter could be recovered from the reply address or headers"""

    pass


class MatterNotFoundError(Exception):
    """The recovered matter id does not exist"""

    pass


class InboundEmail(BaseModel):
    """Fields of the provider's inbound-parse form post"""

    model_config = ConfigDict(populate_by_name=True)

    to: str = ""
    from_address: str = Field("", alias="from")
    subject: str = ""
    text: str = ""
    html: str = ""
    headers: Dict[str, Any] = {}


@dataclass
class MessageMetadata:
    message_id: Optional[str] = None
    references: List[str] = field(default_factory=list)
    context: ReplyContext = field(default_factory=ReplyContext)


def parse_headers_field(raw: Optional[str]) -> Dict[str, Any]:
    """Headers arrive as a JSON string; anything unparseable is treated as no headers"""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"⚠️ Failed to parse inbound email headers: {e}")
        return {}
    if not isinstance(parsed, dict):
        logger.warning(f"⚠️ Inbound email headers were {type(parsed).__name__}, expected an object")
        return {}
    return parsed


def extract_message_metadata(inbound: InboundEmail) -> MessageMetadata:
    references = get_header(inbound.headers, "References") or ""
    return MessageMetadata(
        message_id=get_header(inbound.headers, "Message-ID"),
        references=references.split(),
        context=decode_headers(inbound.headers),
    )


def resolve_reply_context(inbound: InboundEmail, metadata: MessageMetadata) -> ReplyContext:
    """Reply address first; headers fill whatever the address didn't carry"""
    addressed = decode_reply_address(inbound.to) or ReplyContext()
    return addressed.merged_with(metadata.context)


def _record_deadline_reply(
    db: Session, matter: Matter, deadline_id: int, sender: str, body: str
) -> None:
    deadline = db.get(Deadline, deadline_id)
    if not deadline or deadline.matter_id != matter.id:
        logger.warning(f"⚠️ Reply references deadline {deadline_id} not on matter {matter.id}")
        return
    if not body:
        return

    if get_schema_features(db).deadline_notes:
        try:
            with db.begin_nested():
                db.add(
                    DeadlineNote(
                        deadline_id=deadline.id,
                        note=f"Email Reply: {body}",
                        created_by_email=sender,
                    )
                )
        except SQLAlchemyError as e:
            logger.warning(f"⚠️ Could not add deadline note for deadline {deadline.id}: {e}")

    deadline.updated_at = utcnow()


def _append_hearing_note(
    db: Session, matter: Matter, hearing_id: int, sender: str, body: str
) -> None:
    hearing = db.get(Hearing, hearing_id)
    if not hearing or hearing.matter_id != matter.id:
        logger.warning(f"⚠️ Reply references hearing {hearing_id} not on matter {matter.id}")
        return
    if not body:
        return

    entry = f"Email from {sender}: {body}"
    hearing.notes = f"{hearing.notes}\n\n{entry}" if hearing.notes else entry
    hearing.updated_at = utcnow()


def process_inbound_email(
    db: Session, inbound: InboundEmail, cleaner: Optional[ReplyCleaner] = None
) -> InboundReplyResponse:
    """
    Attach an inbound reply to its matter.

    The communication, the deadline/hearing update and the notification are
    committed together. Raises ReplyContextError or MatterNotFoundError.
    """
    metadata = extract_message_metadata(inbound)
    context = resolve_reply_context(inbound, metadata)

    if context.matter_id is None:
        logger.warning(f"⚠️ No reply context in inbound email to {inbound.to!r}")
        raise ReplyContextError("Invalid reply context")

    matter = (
        db.query(Matter)
        .options(joinedload(Matter.client))
        .filter(Matter.id == context.matter_id)
        .first()
    )
    if not matter:
        raise MatterNotFoundError(f"Matter {context.matter_id} not found")

    raw_body = inbound.text or html_to_text(inbound.html)
    body = (cleaner or default_cleaner).clean(raw_body)
    reply_type = context.reply_type

    logger.info(f"📥 Email reply for matter {matter.id} ({reply_type}) from {inbound.from_address}")

    try:
        communication = Communication(
            matter_id=matter.id,
            channel="Email",
            direction="Inbound",
            to_address=inbound.to,
            from_address=inbound.from_address,
            body=body or raw_body,
            sent_at=utcnow(),
            meta={
                "subject": inbound.subject,
                "message_id": metadata.message_id,
                "references": metadata.references,
                "deadline_id": context.deadline_id,
                "hearing_id": context.hearing_id,
                "reply_type": reply_type,
            },
        )
        db.add(communication)
        db.flush()

        if context.deadline_id is not None:
            _record_deadline_reply(db, matter, context.deadline_id, inbound.from_address, body)
        if context.hearing_id is not None:
            _append_hearing_note(db, matter, context.hearing_id, inbound.from_address, body)

        notify_email_reply(
            db,
            matter_id=matter.id,
            from_address=inbound.from_address,
            reply_type=reply_type,
            deadline_id=context.deadline_id,
            hearing_id=context.hearing_id,
        )

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"✅ Stored reply as communication {communication.id}")
    return InboundReplyResponse(
        success=True,
        communication_id=communication.id,
        matter_id=matter.id,
        context=ReplyContextResponse(
            deadline_id=context.deadline_id, hearing_id=context.hearing_id
        ),
    )


def _event_timestamp(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError, OSError) as e:
        logger.warning(f"⚠️ Ignoring unrepresentable event timestamp {value!r}: {e}")
        return None


def process_email_events(db: Session, events: Iterable[Any]) -> int:
    """Store delivery events and flag failed deliveries. Returns the number handled."""
    features = get_schema_features(db)
    processed = 0

    for raw in events:
        try:
            event = EmailEventPayload.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"⚠️ Skipping malformed email event: {e}")
            continue

        if features.email_events:
            try:
                with db.begin_nested():
                    db.add(
                        EmailEvent(
                            provider_message_id=event.provider_message_id,
                            event_type=event.event,
                            email=event.email,
                            timestamp=_event_timestamp(event.timestamp),
                            matter_id=event.matter_id,
                            deadline_id=event.deadline_id,
                            hearing_id=event.hearing_id,
                            event_data=event.raw(),
                        )
                    )
            except SQLAlchemyError as e:
                logger.warning(f"⚠️ Could not store email event {event.event}: {e}")

        if event.event in FAILURE_EVENTS and event.matter_id is not None:
            logger.warning(f"⚠️ Email {event.event} for {event.email} on matter {event.matter_id}")
            notify_delivery_failure(db, event.matter_id, event.email, event.reason)

        processed += 1

    db.commit()
    return processed
