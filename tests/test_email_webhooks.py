"""Tests for the inbound reply and delivery event webhooks"""

import json
from datetime import datetime

import pytest

from docket import config
from docket.models import (
    Client,
    Communication,
    Deadline,
    DeadlineNote,
    EmailEvent,
    Hearing,
    Matter,
    Notification,
)
from docket.services.reply_processor import (
    InboundEmail,
    extract_message_metadata,
    parse_headers_field,
)
from factories import NOW, seed_deadline, seed_hearing, seed_matter

INBOUND = "/webhook/email/inbound"
EVENTS = "/webhook/email/events"


@pytest.fixture(autouse=True)
def no_webhook_secret(monkeypatch):
    monkeypatch.setattr(config, "EMAIL_WEBHOOK_SECRET", None)


def seed_matter_42(db):
    client = Client(first_name="Jane", last_name="Smith")
    db.add(client)
    db.flush()
    matter = Matter(id=42, title="Smith v. Jones", matter_number="2026-042", client_id=client.id)
    db.add(matter)
    db.commit()
    return matter


class TestInboundReply:
    def test_matter_recovered_from_headers(self, db, app_client):
        seed_matter_42(db)
        client = app_client()

        response = client.post(
            INBOUND,
            data={
                "to": "intake@lawfirm.com",
                "from": "counsel@x.com",
                "subject": "Re: update",
                "text": "Thanks, received.",
                "headers": json.dumps({"X-App-Matter-ID": "42", "Message-ID": "<abc@mail>"}),
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["matter_id"] == 42
        assert body["context"] == {"deadline_id": None, "hearing_id": None}

        communication = db.get(Communication, body["communication_id"])
        assert communication.channel == "Email"
        assert communication.direction == "Inbound"
        assert communication.body == "Thanks, received."
        assert communication.meta["message_id"] == "<abc@mail>"
        assert communication.meta["reply_type"] == "matter"

    def test_no_context_returns_400(self, db, app_client):
        response = app_client().post(
            INBOUND, data={"to": "intake@lawfirm.com", "from": "x@y.com", "text": "hi"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid reply context"}

    def test_unknown_matter_returns_404(self, db, app_client):
        response = app_client().post(
            INBOUND, data={"to": "replies+matter-999@docketapp.com", "from": "x@y.com", "text": "hi"}
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Matter not found"}

    def test_deadline_reply_adds_note_and_notification(self, db, app_client):
        matter = seed_matter(db)
        deadline = seed_deadline(db, matter, NOW)
        db.commit()
        matter_id, deadline_id = matter.id, deadline.id

        response = app_client().post(
            INBOUND,
            data={
                "to": f"Docket <replies+matter-{matter_id}-deadline-{deadline_id}@docketapp.com>",
                "from": "counsel@x.com",
                "subject": "Re: Deadline Reminder",
                "text": "Filed today.\n\nOn Mon, Mar 9, 2026 Docket wrote:\n> Deadline: File Answer",
                "headers": "{}",
            },
        )

        assert response.status_code == 200
        assert response.json()["context"] == {"deadline_id": deadline_id, "hearing_id": None}

        (note,) = db.query(DeadlineNote).all()
        assert note.deadline_id == deadline_id
        assert note.note == "Email Reply: Filed today."
        assert note.created_by_email == "counsel@x.com"

        (notification,) = db.query(Notification).all()
        assert notification.title == "Email Reply Received"
        assert notification.message == "Reply received from counsel@x.com regarding deadline"
        assert notification.type == "message"
        assert notification.priority == "medium"
        assert notification.related_matter_id == matter_id
        assert notification.action_url == f"/deadlines?id={deadline_id}"

    def test_hearing_reply_appends_to_notes(self, db, app_client):
        matter = seed_matter(db)
        hearing = seed_hearing(db, matter, NOW, notes="Bring exhibits.")
        db.commit()
        matter_id, hearing_id = matter.id, hearing.id

        response = app_client().post(
            INBOUND,
            data={
                "to": f"replies+matter-{matter_id}-hearing-{hearing_id}@docketapp.com",
                "from": "counsel@x.com",
                "text": "Will attend.",
            },
        )

        assert response.status_code == 200
        db.expire_all()
        assert db.get(Hearing, hearing_id).notes == "Bring exhibits.\n\nEmail from counsel@x.com: Will attend."
        (notification,) = db.query(Notification).all()
        assert notification.action_url == f"/calendar?id={hearing_id}"

    def test_headers_fill_fields_missing_from_address(self, db, app_client):
        matter = seed_matter(db)
        deadline = seed_deadline(db, matter, NOW)
        db.commit()
        matter_id, deadline_id = matter.id, deadline.id

        response = app_client().post(
            INBOUND,
            data={
                "to": f"replies+matter-{matter_id}@docketapp.com",
                "from": "counsel@x.com",
                "text": "Done.",
                "headers": json.dumps({"x-app-deadline-id": str(deadline_id)}),
            },
        )

        assert response.status_code == 200
        assert response.json()["context"]["deadline_id"] == deadline_id

    def test_quoted_only_reply_leaves_deadline_untouched(self, db, app_client):
        matter = seed_matter(db)
        deadline = seed_deadline(db, matter, NOW)
        deadline.updated_at = datetime(2026, 1, 1)
        db.commit()
        matter_id, deadline_id = matter.id, deadline.id

        response = app_client().post(
            INBOUND,
            data={
                "to": f"replies+matter-{matter_id}-deadline-{deadline_id}@docketapp.com",
                "from": "counsel@x.com",
                "text": "> Deadline: File Answer",
            },
        )

        assert response.status_code == 200
        db.expire_all()
        assert db.get(Deadline, deadline_id).updated_at == datetime(2026, 1, 1)
        assert db.query(DeadlineNote).count() == 0
        assert db.query(Communication).count() == 1

    def test_html_only_body_is_converted(self, db, app_client):
        matter = seed_matter(db)
        db.commit()

        response = app_client().post(
            INBOUND,
            data={
                "to": f"replies+matter-{matter.id}@docketapp.com",
                "from": "counsel@x.com",
                "html": "<p>See <b>attached</b> order.</p>",
            },
        )

        assert response.status_code == 200
        communication = db.get(Communication, response.json()["communication_id"])
        assert communication.body == "See attached order."

    def test_malformed_headers_are_ignored(self, db, app_client):
        matter = seed_matter(db)
        db.commit()

        response = app_client().post(
            INBOUND,
            data={
                "to": f"replies+matter-{matter.id}@docketapp.com",
                "from": "counsel@x.com",
                "text": "ok",
                "headers": "{not json",
            },
        )

        assert response.status_code == 200

    def test_missing_optional_tables_do_not_fail(self, bare_db, bare_app_client):
        matter = seed_matter(bare_db)
        deadline = seed_deadline(bare_db, matter, NOW)
        bare_db.commit()

        response = bare_app_client().post(
            INBOUND,
            data={
                "to": f"replies+matter-{matter.id}-deadline-{deadline.id}@docketapp.com",
                "from": "counsel@x.com",
                "text": "Filed.",
            },
        )

        assert response.status_code == 200
        assert bare_db.query(Communication).count() == 1

    def test_unexpected_error_returns_500(self, db, app_client, monkeypatch):
        seed_matter_42(db)

        def explode(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr("docket.routes.email_webhooks.process_inbound_email", explode)
        response = app_client().post(
            INBOUND, data={"to": "replies+matter-42@docketapp.com", "text": "hi"}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process email", "details": "disk full"}


class TestWebhookSecret:
    def test_rejects_missing_token(self, db, app_client, monkeypatch):
        monkeypatch.setattr(config, "EMAIL_WEBHOOK_SECRET", "s3cret")

        response = app_client().post(EVENTS, json=[])

        assert response.status_code == 401

    def test_rejects_wrong_token(self, db, app_client, monkeypatch):
        monkeypatch.setattr(config, "EMAIL_WEBHOOK_SECRET", "s3cret")

        response = app_client().post(EVENTS, json=[], headers={"X-Webhook-Token": "guess"})

        assert response.status_code == 401

    def test_accepts_query_token(self, db, app_client, monkeypatch):
        monkeypatch.setattr(config, "EMAIL_WEBHOOK_SECRET", "s3cret")

        response = app_client().post(f"{EVENTS}?token=s3cret", json=[])

        assert response.status_code == 200

    def test_accepts_header_token(self, db, app_client, monkeypatch):
        monkeypatch.setattr(config, "EMAIL_WEBHOOK_SECRET", "s3cret")

        response = app_client().post(EVENTS, json=[], headers={"X-Webhook-Token": "s3cret"})

        assert response.status_code == 200


class TestEmailEvents:
    def test_non_array_rejected(self, db, app_client):
        response = app_client().post(EVENTS, json={"event": "delivered"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid event data"}

    def test_invalid_json_rejected(self, db, app_client):
        response = app_client().post(
            EVENTS, content=b"not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400

    def test_events_stored_and_bounce_notified(self, db, app_client):
        events = [
            {
                "event": "delivered",
                "email": "a@x.com",
                "timestamp": 1773154800,
                "sg_message_id": "sg-1",
                "matter_id": "12",
                "deadline_id": "5",
                "hearing_id": "",
            },
            {
                "event": "bounce",
                "email": "b@x.com",
                "timestamp": 1773154860,
                "email_id": "re-2",
                "matter_id": 12,
                "reason": "Mailbox does not exist",
            },
        ]

        response = app_client().post(EVENTS, json=events)

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": 2}

        delivered, bounced = db.query(EmailEvent).order_by(EmailEvent.id).all()
        assert delivered.provider_message_id == "sg-1"
        assert delivered.deadline_id == 5
        assert delivered.hearing_id is None
        assert delivered.timestamp.year == 2026
        assert bounced.provider_message_id == "re-2"
        assert bounced.event_data["reason"] == "Mailbox does not exist"

        (notification,) = db.query(Notification).all()
        assert notification.title == "Email Delivery Failed"
        assert notification.type == "system"
        assert notification.related_matter_id == 12
        assert "b@x.com" in notification.message
        assert "Mailbox does not exist" in notification.message

    def test_unrepresentable_timestamp_keeps_batch(self, db, app_client):
        events = [
            {"event": "bounce", "email": "b@x.com", "timestamp": 1773154860, "matter_id": 12},
            {"event": "open", "email": "b@x.com", "timestamp": 1773154800000},
        ]

        response = app_client().post(EVENTS, json=events)

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": 2}
        bounced, opened = db.query(EmailEvent).order_by(EmailEvent.id).all()
        assert bounced.timestamp.year == 2026
        assert opened.timestamp is None
        assert db.query(Notification).count() == 1

    def test_bounce_without_matter_is_not_notified(self, db, app_client):
        response = app_client().post(EVENTS, json=[{"event": "dropped", "email": "b@x.com"}])

        assert response.status_code == 200
        assert db.query(Notification).count() == 0

    def test_malformed_events_skipped(self, db, app_client):
        response = app_client().post(EVENTS, json=[{"email": "no-event@x.com"}, {"event": "open"}])

        assert response.json() == {"success": True, "processed": 1}

    def test_missing_events_table(self, bare_db, bare_app_client):
        response = bare_app_client().post(
            EVENTS, json=[{"event": "bounce", "email": "b@x.com", "matter_id": 1}]
        )

        assert response.status_code == 200
        assert response.json()["processed"] == 1


class TestMetadata:
    def test_parse_headers_field(self):
        assert parse_headers_field('{"Message-ID": "<a>"}') == {"Message-ID": "<a>"}
        assert parse_headers_field("") == {}
        assert parse_headers_field("{broken") == {}
        assert parse_headers_field("[1, 2]") == {}

    def test_extract_message_metadata(self):
        inbound = InboundEmail(
            to="x@y.com",
            headers={
                "Message-ID": "<reply-1@mail>",
                "References": "<thread-deadline-5@docketapp.com> <deadline-5-1@docketapp.com>",
                "X-App-Matter-ID": "3",
                "X-App-Deadline-ID": "5",
            },
        )

        metadata = extract_message_metadata(inbound)

        assert metadata.message_id == "<reply-1@mail>"
        assert metadata.references == [
            "<thread-deadline-5@docketapp.com>",
            "<deadline-5-1@docketapp.com>",
        ]
        assert metadata.context.matter_id == 3
        assert metadata.context.deadline_id == 5
