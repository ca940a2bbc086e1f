"""
Notification Email Service using Resend
Sends deadline reminders and hearing notifications with reply-tracking
headers so replies can be routed back to the right matter record.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Iterable, Optional, Protocol

import resend

from .config import (
    EMAIL_FROM_ADDRESS,
    EMAIL_REPLY_DOMAIN,
    EMAIL_SEND_TIMEOUT_SECONDS,
    RESEND_API_KEY,
)
from .email_context import EmailContext, custom_args, encode_headers, encode_reply_address
from .email_templates import render_deadline_reminder, render_default_html, render_hearing_notification
from .schemas import EmailContent, EmailRecipient, OutboundEmail, RelevantParty, SendResult

logger = logging.getLogger(__name__)

# Resend accepts at most 100 messages per batch call
RESEND_BATCH_LIMIT = 100


class EmailConfigurationError(Exception):
    """Raised when no email provider is configured"""

    pass


class EmailTransport(Protocol):
    async def send_batch(self, messages: list[OutboundEmail]) -> list[str]:
        """Send every message; return provider message ids. Raise on failure."""
        ...


class ResendTransport:
    """EmailTransport backed by the Resend batch API"""

    def __init__(self, api_key: Optional[str] = RESEND_API_KEY):
        if not api_key:
            logger.error("❌ No email service configured - RESEND_API_KEY missing")
            raise EmailConfigurationError("Email service not configured")
        resend.api_key = api_key

    @staticmethod
    def to_params(message: OutboundEmail) -> dict:
        params = {
            "from": message.from_address,
            "to": [recipient.formatted() for recipient in message.to],
            "reply_to": message.reply_to,
            "subject": message.subject,
            "text": message.text,
            "html": message.html,
            "headers": message.headers,
        }
        # Resend tags mirror the custom args; empty values are not allowed as tag values
        tags = [{"name": k, "value": v} for k, v in message.custom_args.items() if v]
        if tags:
            params["tags"] = tags
        return params

    async def send_batch(self, messages: list[OutboundEmail]) -> list[str]:
        # Open/click tracking is enabled on the sending domain in Resend, not per message
        message_ids: list[str] = []
        for start in range(0, len(messages), RESEND_BATCH_LIMIT):
            chunk = [self.to_params(m) for m in messages[start : start + RESEND_BATCH_LIMIT]]
            response = await asyncio.to_thread(resend.Batch.send, chunk)
            data = response.get("data", []) if isinstance(response, dict) else response
            message_ids.extend(item["id"] for item in data or [] if item.get("id"))
        return message_ids


def recipients_for(parties: Iterable[RelevantParty], flag: str) -> list[EmailRecipient]:
    """Parties with an email address that opted in to `flag` (notify_deadlines / notify_hearings)"""
    return [
        EmailRecipient(email=party.email, name=party.name)
        for party in parties
        if party.email and getattr(party, flag)
    ]


class NotificationSender:
    """
    Builds tracked notification emails and hands them to a transport.

    Never raises from a send: failures come back as SendResult(success=False).
    """

    def __init__(
        self,
        transport: EmailTransport,
        from_address: str = EMAIL_FROM_ADDRESS,
        reply_domain: str = EMAIL_REPLY_DOMAIN,
        send_timeout: float = EMAIL_SEND_TIMEOUT_SECONDS,
    ):
        self.transport = transport
        self.from_address = from_address
        self.reply_domain = reply_domain
        self.send_timeout = send_timeout

    def build_messages(
        self, recipients: list[EmailRecipient], content: EmailContent, context: EmailContext
    ) -> list[OutboundEmail]:
        reply_to = encode_reply_address(context, self.reply_domain)
        sent_at_ms = round(time.time() * 1000)
        html = content.html or render_default_html(content.subject, content.text)
        # One message per recipient so parties never see each other's addresses
        return [
            OutboundEmail(
                to=[recipient],
                from_address=self.from_address,
                reply_to=reply_to,
                subject=content.subject,
                text=content.text,
                html=html,
                # Message-IDs stay unique across the batch
                headers=encode_headers(context, self.reply_domain, now=(sent_at_ms + index) / 1000),
                custom_args=custom_args(context),
                track_opens=True,
                track_clicks=True,
            )
            for index, recipient in enumerate(recipients)
        ]

    async def send_notification(
        self, recipients: list[EmailRecipient], content: EmailContent, context: EmailContext
    ) -> SendResult:
        """Send `content` to every recipient given, tagged with `context`"""
        try:
            messages = self.build_messages(recipients, content, context)
            logger.info(f"📧 Sending '{content.subject}' to {len(messages)} recipient(s)")
            message_ids = await asyncio.wait_for(
                self.transport.send_batch(messages), timeout=self.send_timeout
            )
            logger.info(f"✅ Notification sent for {context.resource}: {message_ids}")
            return SendResult(success=True, message_ids=list(message_ids or []))
        except asyncio.TimeoutError:
            logger.error(f"❌ Email send timed out after {self.send_timeout}s for {context.resource}")
            return SendResult(success=False, error=f"Email send timed out after {self.send_timeout}s")
        except Exception as e:
            logger.error(f"❌ Email sending failed for {context.resource}: {e}")
            return SendResult(success=False, error=str(e) or "Failed to send email")

    async def send_deadline_reminder(
        self,
        matter,
        deadline,
        parties: Iterable[RelevantParty],
        now: Optional[datetime] = None,
    ) -> SendResult:
        """Send a deadline reminder to parties opted in to deadline notifications"""
        recipients = recipients_for(parties, "notify_deadlines")
        if not recipients:
            logger.debug(f"No deadline recipients for matter {matter.id}, skipping send")
            return SendResult(success=True, message_ids=[])

        rendered = render_deadline_reminder(matter, deadline, now)
        return await self.send_notification(
            recipients,
            EmailContent(subject=rendered.subject, text=rendered.text, html=rendered.html),
            EmailContext.for_deadline(matter.id, deadline.id),
        )

    async def send_hearing_notification(
        self, matter, hearing, parties: Iterable[RelevantParty]
    ) -> SendResult:
        """Send a hearing notification to parties opted in to hearing notifications"""
        recipients = recipients_for(parties, "notify_hearings")
        if not recipients:
            logger.debug(f"No hearing recipients for matter {matter.id}, skipping send")
            return SendResult(success=True, message_ids=[])

        rendered = render_hearing_notification(matter, hearing)
        return await self.send_notification(
            recipients,
            EmailContent(subject=rendered.subject, text=rendered.text, html=rendered.html),
            EmailContext.for_hearing(matter.id, hearing.id),
        )


def get_transport() -> EmailTransport:
    """Production transport. Raises EmailConfigurationError when Resend is not configured."""
    return ResendTransport(RESEND_API_KEY)


def get_notification_sender() -> NotificationSender:
    return NotificationSender(transport=get_transport())
