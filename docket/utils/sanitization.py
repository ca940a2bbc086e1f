import html
from typing import Optional

import bleach


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Sanitize a string by escaping HTML special characters to prevent XSS.
    Returns None if input is None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return html.escape(str(value), quote=True)
    return html.escape(value, quote=True)


def html_to_text(html_content: Optional[str]) -> str:
    """
    Reduce untrusted HTML (e.g. an inbound email body) to plain text.
    Block-level breaks are kept as newlines so quote stripping still works line by line.
    """
    if not html_content:
        return ""

    with_breaks = (
        html_content.replace("<br>", "\n")
        .replace("<br/>", "\n")
        .replace("<br />", "\n")
        .replace("</p>", "</p>\n")
        .replace("</div>", "</div>\n")
    )
    stripped = bleach.clean(with_breaks, tags=set(), attributes={}, strip=True, strip_comments=True)
    return html.unescape(stripped).strip()


def truncate(value: Optional[str], max_length: int = 200) -> str:
    """Shorten text for notification previews"""
    if not value:
        return ""
    value = value.strip()
    if len(value) <= max_length:
        return value
    return value[: max_length - 3].rstrip() + "..."
