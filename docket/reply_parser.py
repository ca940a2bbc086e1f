"""
Reply body cleaning
Strips quoted history, header blocks and our own template text from an
inbound reply so only the new content is stored.

Best effort: regex heuristics, not a full reply parser. Callers depend on the
ReplyCleaner protocol so the strategy can be swapped without touching them.
"""

import re
from typing import Protocol


class ReplyCleaner(Protocol):
    def clean(self, body: str) -> str: ...


# Applied in order; each removes matching text
REPLY_INDICATORS = [
    re.compile(r"^On .* wrote:$", re.MULTILINE),
    re.compile(r"^From:.*$", re.MULTILINE),
    re.compile(r"^Sent:.*$", re.MULTILINE),
    re.compile(r"^To:.*$", re.MULTILINE),
    re.compile(r"^Subject:.*$", re.MULTILINE),
    re.compile(r"^>.*$", re.MULTILINE),  # Quoted lines
    re.compile(r"^Dear Legal Team,.*$", re.MULTILINE),  # Our template greeting
    re.compile(r"^Best regards,[\s\S]*$", re.MULTILINE),  # Sign-off and everything after
    re.compile(r"^---[\s\S]*$", re.MULTILINE),  # Everything after signature separator
]


class RegexReplyCleaner:
    def __init__(self, patterns=None):
        self.patterns = patterns or REPLY_INDICATORS

    def clean(self, body: str) -> str:
        if not body:
            return ""
        cleaned = body.replace("\r\n", "\n")
        for pattern in self.patterns:
            cleaned = pattern.sub("", cleaned)
        # Collapse the blank runs left behind by removed lines
        cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
        return cleaned.strip()


default_cleaner = RegexReplyCleaner()


def strip_quoted_reply(body: str) -> str:
    return default_cleaner.clean(body)
