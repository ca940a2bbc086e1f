from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RelevantParty(BaseModel):
    """Notification recipient configured on a matter"""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    notify_deadlines: bool = False
    notify_hearings: bool = False

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v


class EmailRecipient(BaseModel):
    email: str
    name: Optional[str] = None

    def formatted(self) -> str:
        return f"{self.name} <{self.email}>" if self.name else self.email


class EmailContent(BaseModel):
    subject: str
    text: str
    html: Optional[str] = None


class OutboundEmail(BaseModel):
    """Provider-neutral message handed to an EmailTransport"""

    model_config = ConfigDict(populate_by_name=True)

    to: List[EmailRecipient]
    from_address: str = Field(alias="from")
    reply_to: str
    subject: str
    text: str
    html: str
    headers: Dict[str, str] = {}
    custom_args: Dict[str, str] = {}
    track_opens: bool = True
    track_clicks: bool = True


class SendResult(BaseModel):
    success: bool
    message_ids: List[str] = []
    error: Optional[str] = None


class ReminderRunResult(BaseModel):
    sent: int = 0
    errors: int = 0


class ScheduledRunSummary(BaseModel):
    success: bool
    deadline_reminders: ReminderRunResult
    hearing_reminders: ReminderRunResult
    total_sent: int
    total_errors: int
    timestamp: datetime


class ReplyContextResponse(BaseModel):
    deadline_id: Optional[int] = None
    hearing_id: Optional[int] = None


class InboundReplyResponse(BaseModel):
    success: bool
    communication_id: int
    matter_id: int
    context: ReplyContextResponse


class EmailEventPayload(BaseModel):
    """One delivery event from the provider's event webhook"""

    model_config = ConfigDict(extra="allow")

    event: str
    email: Optional[str] = None
    timestamp: Optional[float] = None
    sg_message_id: Optional[str] = None
    email_id: Optional[str] = None
    matter_id: Optional[int] = None
    deadline_id: Optional[int] = None
    hearing_id: Optional[int] = None
    reason: Optional[str] = None

    @field_validator("matter_id", "deadline_id", "hearing_id", mode="before")
    @classmethod
    def blank_id_is_none(cls, v):
        # Custom args come back as strings; "" means the id was never set
        if v in ("", None):
            return None
        return v

    @property
    def provider_message_id(self) -> Optional[str]:
        return self.sg_message_id or self.email_id

    def raw(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
