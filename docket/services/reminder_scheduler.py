"""
Reminder Scheduler
Scans matter notification settings and emails relevant parties about
deadlines and hearings falling on each configured reminder offset.

Runs are stateless; dedupe state lives in the email_reminders /
hearing_reminders ledgers (one row per resource, offset and firm-local day).
Overlapping runs are absorbed by the ledger's unique constraint: a reminder
is claimed before it is sent.
"""

import json
import logging
from datetime import date, datetime
from functools import partial
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..config import DEFAULT_REMINDER_DAYS
from ..database import get_schema_features
from ..email_service import NotificationSender, recipients_for
from ..models import (
    Client,
    Deadline,
    EmailReminder,
    Hearing,
    HearingReminder,
    Matter,
    MatterSettings,
)
from ..schemas import ReminderRunResult, RelevantParty, ScheduledRunSummary, SendResult
from ..utils.dates import day_window, firm_today, utcnow

logger = logging.getLogger(__name__)


class MatterReminderConfig:
    """Parsed notification settings for one matter"""

    def __init__(self, matter: Matter, reminder_days: list[int], parties: list[RelevantParty]):
        self.matter = matter
        self.reminder_days = reminder_days
        self.parties = parties


def _load_json_list(value, field: str, matter_id: int) -> Optional[list]:
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, list):
        raise ValueError(f"{field} for matter {matter_id} is not a list")
    return value


def parse_reminder_days(value, matter_id: int) -> list[int]:
    """Offsets in days, defaulting to DEFAULT_REMINDER_DAYS. Duplicates and negatives dropped."""
    raw = _load_json_list(value, "reminder_days_before", matter_id)
    if raw is None:
        return list(DEFAULT_REMINDER_DAYS)

    days: list[int] = []
    for item in raw:
        day = int(item)
        if day >= 0 and day not in days:
            days.append(day)
    return days


def parse_relevant_parties(value, matter_id: int) -> list[RelevantParty]:
    raw = _load_json_list(value, "relevant_parties", matter_id) or []

    parties = []
    for item in raw:
        try:
            parties.append(RelevantParty.model_validate(item))
        except ValidationError as e:
            logger.warning(f"⚠️ Skipping malformed relevant party on matter {matter_id}: {e}")
    return parties


class ReminderScheduler:
    def __init__(
        self,
        db: Session,
        sender: NotificationSender,
        now: Optional[datetime] = None,
        tz_name: Optional[str] = None,
    ):
        self.db = db
        self.sender = sender
        self.now = now
        self.tz_name = tz_name

    # ----------------------------------------------------------------
    # Entry points
    # ----------------------------------------------------------------

    async def send_deadline_reminders(self) -> ReminderRunResult:
        """Check and send reminder emails for upcoming deadlines"""
        return await self._run(
            label="deadline",
            party_flag="notify_deadlines",
            find_resources=self._find_deadlines,
            send=partial(self.sender.send_deadline_reminder, now=self.now),
            ledger_model=EmailReminder,
            ledger_fk="deadline_id",
        )

    async def send_hearing_reminders(self) -> ReminderRunResult:
        """Check and send reminder emails for upcoming hearings"""
        return await self._run(
            label="hearing",
            party_flag="notify_hearings",
            find_resources=self._find_hearings,
            send=self.sender.send_hearing_notification,
            ledger_model=HearingReminder,
            ledger_fk="hearing_id",
        )

    # ----------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------

    def load_matter_configs(self) -> list[MatterReminderConfig]:
        """Matters with calendar reminders and party notifications enabled"""
        settings_rows = (
            self.db.query(MatterSettings)
            .join(Matter, MatterSettings.matter_id == Matter.id)
            .join(Client, Matter.client_id == Client.id)
            .options(joinedload(MatterSettings.matter).joinedload(Matter.client))
            .filter(
                MatterSettings.calendar_reminders_enabled.is_(True),
                MatterSettings.notify_relevant_parties.is_(True),
                MatterSettings.relevant_parties.isnot(None),
            )
            .all()
        )

        configs = []
        for settings in settings_rows:
            try:
                configs.append(
                    MatterReminderConfig(
                        matter=settings.matter,
                        reminder_days=parse_reminder_days(
                            settings.reminder_days_before, settings.matter_id
                        ),
                        parties=parse_relevant_parties(settings.relevant_parties, settings.matter_id),
                    )
                )
            except (ValueError, TypeError) as e:
                logger.warning(f"⚠️ Invalid reminder settings for matter {settings.matter_id}: {e}")
        return configs

    def _find_deadlines(self, matter_id: int, start: datetime, end: datetime) -> list[Deadline]:
        return (
            self.db.query(Deadline)
            .filter(
                Deadline.matter_id == matter_id,
                Deadline.status == "Open",
                Deadline.due_at >= start,
                Deadline.due_at <= end,
            )
            .order_by(Deadline.due_at.asc())
            .all()
        )

    def _find_hearings(self, matter_id: int, start: datetime, end: datetime) -> list[Hearing]:
        return (
            self.db.query(Hearing)
            .options(joinedload(Hearing.court))
            .filter(
                Hearing.matter_id == matter_id,
                Hearing.start_at >= start,
                Hearing.start_at <= end,
            )
            .order_by(Hearing.start_at.asc())
            .all()
        )

    # ----------------------------------------------------------------
    # Ledger
    # ----------------------------------------------------------------

    def _today(self) -> date:
        return firm_today(self.now, self.tz_name)

    def _find_claim(self, ledger_model, ledger_fk: str, resource_id: int, days: int, today: date):
        fk_column = getattr(ledger_model, ledger_fk)
        return (
            self.db.query(ledger_model.id)
            .filter(
                fk_column == resource_id,
                ledger_model.reminder_days == days,
                ledger_model.sent_on == today,
            )
            .first()
        )

    def _claim(self, ledger_model, ledger_fk: str, resource_id: int, days: int):
        """
        Reserve (resource, offset, today) in the ledger.

        Returns the claimed row, False when another send already owns the
        pair, or None when the ledger can't be written (send proceeds unclaimed).
        """
        today = self._today()
        if self._find_claim(ledger_model, ledger_fk, resource_id, days, today):
            return False

        claim = ledger_model(
            **{ledger_fk: resource_id},
            reminder_days=days,
            sent_on=today,
            sent_at=utcnow(),
            message_ids=[],
        )
        try:
            with self.db.begin_nested():
                self.db.add(claim)
            self.db.commit()
            return claim
        except IntegrityError:
            # A concurrent run claimed the same reminder first
            self.db.rollback()
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(
                f"⚠️ Could not write {ledger_model.__tablename__} for {ledger_fk}={resource_id}: {e}"
            )
            return None

    def _record(self, claim, result: SendResult) -> None:
        try:
            claim.message_ids = result.message_ids
            claim.sent_at = utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Could not update reminder ledger row {claim.id}: {e}")

    def _release(self, claim) -> None:
        """Drop a claim after a failed send so a later run can retry"""
        try:
            self.db.delete(claim)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Could not release reminder ledger row {claim.id}: {e}")

    # ----------------------------------------------------------------
    # Run loop
    # ----------------------------------------------------------------

    async def _run(
        self,
        label: str,
        party_flag: str,
        find_resources: Callable[[int, datetime, datetime], list],
        send: Callable[..., Awaitable[SendResult]],
        ledger_model,
        ledger_fk: str,
    ) -> ReminderRunResult:
        result = ReminderRunResult()

        try:
            configs = self.load_matter_configs()
        except Exception as e:
            logger.error(f"❌ Error loading matter settings for {label} reminders: {e}")
            self.db.rollback()
            result.errors += 1
            return result

        ledger_enabled = getattr(get_schema_features(self.db), ledger_model.__tablename__)
        if not ledger_enabled:
            logger.warning(f"⚠️ {ledger_model.__tablename__} missing - {label} reminders will not be deduplicated")

        for config in configs:
            matter = config.matter
            if not config.parties:
                continue
            if not recipients_for(config.parties, party_flag):
                logger.debug(f"No parties opted in to {label} reminders on matter {matter.id}")
                continue

            try:
                await self._process_matter(
                    config, label, find_resources, send, ledger_model, ledger_fk, ledger_enabled, result
                )
            except Exception as e:
                # Count the matter as one error and move on
                logger.error(f"❌ Error processing {label} reminders for matter {matter.id}: {e}")
                self.db.rollback()
                result.errors += 1

        logger.info(f"📊 {label.capitalize()} reminder run completed: {result.sent} sent, {result.errors} errors")
        return result

    async def _process_matter(
        self,
        config: MatterReminderConfig,
        label: str,
        find_resources,
        send,
        ledger_model,
        ledger_fk: str,
        ledger_enabled: bool,
        result: ReminderRunResult,
    ) -> None:
        matter = config.matter
        for days in config.reminder_days:
            start, end = day_window(days, self.now, self.tz_name)

            for resource in find_resources(matter.id, start, end):
                claim = None
                if ledger_enabled:
                    claim = self._claim(ledger_model, ledger_fk, resource.id, days)
                    if claim is False:
                        logger.debug(f"Already reminded {label} {resource.id} for {days}-day offset today")
                        continue

                try:
                    send_result = await send(matter, resource, config.parties)
                except Exception as e:
                    send_result = SendResult(success=False, error=str(e))

                if send_result.success:
                    result.sent += 1
                    logger.info(f"✅ {label.capitalize()} reminder sent: {label} {resource.id}, {days}-day offset")
                    if claim:
                        self._record(claim, send_result)
                else:
                    result.errors += 1
                    logger.error(
                        f"❌ Failed to send {label} reminder for {resource.id}: {send_result.error}"
                    )
                    if claim:
                        self._release(claim)


async def run_scheduled_reminders(
    db: Session, sender: NotificationSender, now: Optional[datetime] = None
) -> ScheduledRunSummary:
    """Run deadline and hearing reminders and merge the totals"""
    scheduler = ReminderScheduler(db, sender, now=now)

    deadline_results = await scheduler.send_deadline_reminders()
    hearing_results = await scheduler.send_hearing_reminders()

    return ScheduledRunSummary(
        success=True,
        deadline_reminders=deadline_results,
        hearing_reminders=hearing_results,
        total_sent=deadline_results.sent + hearing_results.sent,
        total_errors=deadline_results.errors + hearing_results.errors,
        timestamp=utcnow(),
    )
