"""
Email Context Codec
Maps matter/deadline/hearing context into outbound email metadata
(Reply-To address, custom headers, provider tags) and back out of inbound replies.

This module is the only place that knows the string formats.
"""

import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from .config import EMAIL_REPLY_DOMAIN

HEADER_MATTER_ID = "X-App-Matter-ID"
HEADER_TYPE = "X-App-Type"
HEADER_DEADLINE_ID = "X-App-Deadline-ID"
HEADER_HEARING_ID = "X-App-Hearing-ID"

REPLY_ADDRESS_PATTERN = re.compile(
    r"replies\+matter-(\d+)(?:-deadline-(\d+))?(?:-hearing-(\d+))?@"
)


class ContextKind(str, Enum):
    MATTER = "matter"
    DEADLINE = "deadline"
    HEARING = "hearing"


@dataclass(frozen=True)
class EmailContext:
    """
    Context carried by an outbound notification.

    A tagged variant: a matter on its own, or a matter plus exactly one
    deadline or hearing (resource_id).
    """

    matter_id: int
    kind: ContextKind = ContextKind.MATTER
    resource_id: Optional[int] = None

    def __post_init__(self):
        if self.kind is ContextKind.MATTER and self.resource_id is not None:
            raise ValueError("Matter-only context cannot carry a resource id")
        if self.kind is not ContextKind.MATTER and self.resource_id is None:
            raise ValueError(f"{self.kind.value} context requires a resource id")

    @classmethod
    def for_matter(cls, matter_id: int) -> "EmailContext":
        return cls(matter_id=matter_id)

    @classmethod
    def for_deadline(cls, matter_id: int, deadline_id: int) -> "EmailContext":
        return cls(matter_id=matter_id, kind=ContextKind.DEADLINE, resource_id=deadline_id)

    @classmethod
    def for_hearing(cls, matter_id: int, hearing_id: int) -> "EmailContext":
        return cls(matter_id=matter_id, kind=ContextKind.HEARING, resource_id=hearing_id)

    @classmethod
    def from_ids(
        cls,
        matter_id: int,
        deadline_id: Optional[int] = None,
        hearing_id: Optional[int] = None,
    ) -> "EmailContext":
        """Build a context from loose ids. A deadline wins over a hearing; both are never kept."""
        if deadline_id is not None:
            return cls.for_deadline(matter_id, deadline_id)
        if hearing_id is not None:
            return cls.for_hearing(matter_id, hearing_id)
        return cls.for_matter(matter_id)

    @property
    def deadline_id(self) -> Optional[int]:
        return self.resource_id if self.kind is ContextKind.DEADLINE else None

    @property
    def hearing_id(self) -> Optional[int]:
        return self.resource_id if self.kind is ContextKind.HEARING else None

    @property
    def resource(self) -> str:
        """Resource token used in Message-IDs and thread ids"""
        if self.kind is ContextKind.MATTER:
            return f"matter-{self.matter_id}"
        return f"{self.kind.value}-{self.resource_id}"


@dataclass(frozen=True)
class ReplyContext:
    """Context recovered from an inbound reply. Any field may be missing."""

    matter_id: Optional[int] = None
    deadline_id: Optional[int] = None
    hearing_id: Optional[int] = None
    type: Optional[str] = None

    def merged_with(self, fallback: "ReplyContext") -> "ReplyContext":
        """Fill each missing field from fallback"""
        return ReplyContext(
            matter_id=self.matter_id if self.matter_id is not None else fallback.matter_id,
            deadline_id=self.deadline_id if self.deadline_id is not None else fallback.deadline_id,
            hearing_id=self.hearing_id if self.hearing_id is not None else fallback.hearing_id,
            type=self.type or fallback.type,
        )

    @property
    def reply_type(self) -> str:
        if self.deadline_id is not None:
            return ContextKind.DEADLINE.value
        if self.hearing_id is not None:
            return ContextKind.HEARING.value
        return ContextKind.MATTER.value


def encode_reply_address(context: EmailContext, domain: str = EMAIL_REPLY_DOMAIN) -> str:
    """replies+matter-<id>[-deadline-<id>|-hearing-<id>]@<domain>"""
    suffix = f"-{context.resource}" if context.kind is not ContextKind.MATTER else ""
    return f"replies+matter-{context.matter_id}{suffix}@{domain}"


def decode_reply_address(address: Optional[str]) -> Optional[ReplyContext]:
    """
    Parse a reply-tracking address (display names and address lists are fine).
    Returns None when the address carries no context.
    """
    if not address:
        return None
    match = REPLY_ADDRESS_PATTERN.search(address)
    if not match:
        return None

    matter_id, deadline_id, hearing_id = match.groups()
    return ReplyContext(
        matter_id=int(matter_id),
        deadline_id=int(deadline_id) if deadline_id else None,
        hearing_id=int(hearing_id) if hearing_id else None,
    )


def generate_message_id(
    context: EmailContext, domain: str = EMAIL_REPLY_DOMAIN, now: Optional[float] = None
) -> str:
    timestamp_ms = round((now if now is not None else time.time()) * 1000)
    return f"<{context.resource}-{timestamp_ms}@{domain}>"


def generate_thread_id(context: EmailContext, domain: str = EMAIL_REPLY_DOMAIN) -> str:
    return f"<thread-{context.resource}@{domain}>"


def encode_headers(
    context: EmailContext, domain: str = EMAIL_REPLY_DOMAIN, now: Optional[float] = None
) -> dict[str, str]:
    headers = {
        HEADER_MATTER_ID: str(context.matter_id),
        HEADER_TYPE: context.kind.value,
        HEADER_DEADLINE_ID: str(context.deadline_id) if context.deadline_id is not None else "",
        HEADER_HEARING_ID: str(context.hearing_id) if context.hearing_id is not None else "",
        "Message-ID": generate_message_id(context, domain, now),
    }
    # Deadline reminders thread together in the recipient's mail client
    if context.deadline_id is not None:
        thread_id = generate_thread_id(context, domain)
        headers["References"] = thread_id
        headers["In-Reply-To"] = thread_id
    return headers


def custom_args(context: EmailContext) -> dict[str, str]:
    """Provider-side metadata mirroring the X-App-* headers"""
    return {
        "matter_id": str(context.matter_id),
        "type": context.kind.value,
        "deadline_id": str(context.deadline_id) if context.deadline_id is not None else "",
        "hearing_id": str(context.hearing_id) if context.hearing_id is not None else "",
    }


def get_header(headers: Optional[Mapping], name: str) -> Optional[str]:
    """Case-insensitive header lookup"""
    if not headers:
        return None
    if name in headers:
        value = headers[name]
    else:
        lowered = name.lower()
        value = next((v for k, v in headers.items() if str(k).lower() == lowered), None)
    return None if value is None else str(value)


def _parse_id(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    return int(value)


def decode_headers(headers: Optional[Mapping]) -> ReplyContext:
    """Recover context from X-App-* headers. Empty values decode to None."""
    return ReplyContext(
        matter_id=_parse_id(get_header(headers, HEADER_MATTER_ID)),
        deadline_id=_parse_id(get_header(headers, HEADER_DEADLINE_ID)),
        hearing_id=_parse_id(get_header(headers, HEADER_HEARING_ID)),
        type=get_header(headers, HEADER_TYPE) or None,
    )
