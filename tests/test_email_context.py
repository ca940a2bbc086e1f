"""Tests for the reply address / header codec"""

import pytest

from docket.email_context import (
    ContextKind,
    EmailContext,
    ReplyContext,
    custom_args,
    decode_headers,
    decode_reply_address,
    encode_headers,
    encode_reply_address,
    generate_message_id,
    get_header,
)

DOMAIN = "docketapp.com"


class TestReplyAddress:
    def test_matter_only(self):
        address = encode_reply_address(EmailContext.for_matter(12), DOMAIN)
        assert address == "replies+matter-12@docketapp.com"

    def test_deadline(self):
        address = encode_reply_address(EmailContext.for_deadline(12, 5), DOMAIN)
        assert address == "replies+matter-12-deadline-5@docketapp.com"

    def test_hearing(self):
        address = encode_reply_address(EmailContext.for_hearing(12, 9), DOMAIN)
        assert address == "replies+matter-12-hearing-9@docketapp.com"

    @pytest.mark.parametrize(
        "context",
        [
            EmailContext.for_matter(1),
            EmailContext.for_deadline(1, 2),
            EmailContext.for_hearing(3, 4),
        ],
    )
    def test_decode_recovers_encoded_context(self, context):
        decoded = decode_reply_address(encode_reply_address(context, DOMAIN))
        assert decoded == ReplyContext(
            matter_id=context.matter_id,
            deadline_id=context.deadline_id,
            hearing_id=context.hearing_id,
        )

    def test_deadline_wins_when_both_ids_given(self):
        context = EmailContext.from_ids(7, deadline_id=1, hearing_id=2)
        assert context.kind is ContextKind.DEADLINE
        assert encode_reply_address(context, DOMAIN) == "replies+matter-7-deadline-1@docketapp.com"

    def test_decode_accepts_display_name(self):
        decoded = decode_reply_address('"Firm Replies" <replies+matter-42-hearing-3@docketapp.com>')
        assert decoded.matter_id == 42
        assert decoded.hearing_id == 3
        assert decoded.deadline_id is None

    @pytest.mark.parametrize(
        "address",
        [None, "", "someone@example.com", "replies+matter-abc@docketapp.com", "replies@docketapp.com"],
    )
    def test_decode_without_context(self, address):
        assert decode_reply_address(address) is None


class TestEmailContext:
    def test_matter_context_rejects_resource_id(self):
        with pytest.raises(ValueError):
            EmailContext(matter_id=1, kind=ContextKind.MATTER, resource_id=3)

    def test_resource_context_requires_id(self):
        with pytest.raises(ValueError):
            EmailContext(matter_id=1, kind=ContextKind.HEARING)

    def test_resource_token(self):
        assert EmailContext.for_matter(4).resource == "matter-4"
        assert EmailContext.for_deadline(4, 8).resource == "deadline-8"
        assert EmailContext.for_hearing(4, 6).resource == "hearing-6"


class TestHeaders:
    def test_deadline_headers_include_thread(self):
        headers = encode_headers(EmailContext.for_deadline(10, 5), DOMAIN, now=1700000000.123)

        assert headers["X-App-Matter-ID"] == "10"
        assert headers["X-App-Type"] == "deadline"
        assert headers["X-App-Deadline-ID"] == "5"
        assert headers["X-App-Hearing-ID"] == ""
        assert headers["Message-ID"] == "<deadline-5-1700000000123@docketapp.com>"
        assert headers["References"] == "<thread-deadline-5@docketapp.com>"
        assert headers["In-Reply-To"] == "<thread-deadline-5@docketapp.com>"

    def test_hearing_headers_have_no_thread(self):
        headers = encode_headers(EmailContext.for_hearing(10, 2), DOMAIN)

        assert headers["X-App-Hearing-ID"] == "2"
        assert headers["X-App-Deadline-ID"] == ""
        assert "References" not in headers
        assert "In-Reply-To" not in headers

    def test_message_id_format(self):
        message_id = generate_message_id(EmailContext.for_matter(3), DOMAIN, now=12.5)
        assert message_id == "<matter-3-12500@docketapp.com>"

    def test_empty_header_values_decode_to_none(self):
        context = decode_headers(encode_headers(EmailContext.for_matter(42), DOMAIN))
        assert context == ReplyContext(matter_id=42, type="matter")

    def test_decode_is_case_insensitive(self):
        context = decode_headers({"x-app-matter-id": "42", "x-app-deadline-id": " 7 "})
        assert context.matter_id == 42
        assert context.deadline_id == 7

    def test_decode_ignores_non_numeric_ids(self):
        context = decode_headers({"X-App-Matter-ID": "forty-two"})
        assert context.matter_id is None

    def test_decode_missing_headers(self):
        assert decode_headers(None) == ReplyContext()

    def test_get_header_exact_match_first(self):
        assert get_header({"Message-ID": "<a>", "message-id": "<b>"}, "Message-ID") == "<a>"

    def test_custom_args_mirror_headers(self):
        args = custom_args(EmailContext.for_hearing(10, 2))
        assert args == {"matter_id": "10", "type": "hearing", "deadline_id": "", "hearing_id": "2"}


class TestReplyContext:
    def test_merge_fills_missing_fields_only(self):
        from_address = ReplyContext(matter_id=1)
        from_headers = ReplyContext(matter_id=99, deadline_id=5, type="deadline")

        merged = from_address.merged_with(from_headers)

        assert merged == ReplyContext(matter_id=1, deadline_id=5, type="deadline")

    @pytest.mark.parametrize(
        "context,expected",
        [
            (ReplyContext(matter_id=1), "matter"),
            (ReplyContext(matter_id=1, hearing_id=2), "hearing"),
            (ReplyContext(matter_id=1, deadline_id=3, hearing_id=2), "deadline"),
        ],
    )
    def test_reply_type(self, context, expected):
        assert context.reply_type == expected
