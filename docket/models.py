from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    matters = relationship("Matter", back_populates="client")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Matter(Base):
    __tablename__ = "matters"

    id = Column(Integer, primary_key=True, index=True)
    matter_number = Column(String(50), nullable=False)
    title = Column(String(500), nullable=False)
    practice_area = Column(String(50), nullable=True)  # Criminal, PersonalInjury, SSD
    status = Column(String(50), default="Open")  # Intake, Open, Pending, Closed
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="matters")
    deadlines = relationship("Deadline", back_populates="matter")
    hearings = relationship("Hearing", back_populates="matter")
    settings = relationship("MatterSettings", back_populates="matter", uselist=False)


class Court(Base):
    __tablename__ = "courts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)


class Deadline(Base):
    __tablename__ = "deadlines"

    id = Column(Integer, primary_key=True, index=True)
    matter_id = Column(Integer, ForeignKey("matters.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    source = Column(String(50), default="Manual")  # Rule, CourtOrder, SSA, Manual
    trigger_event_id = Column(Integer, nullable=True)
    due_at = Column(DateTime, nullable=False, index=True)  # UTC
    status = Column(String(50), default="Open", nullable=False)  # Open, Completed, PastDue
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    matter = relationship("Matter", back_populates="deadlines")


class Hearing(Base):
    __tablename__ = "hearings"

    id = Column(Integer, primary_key=True, index=True)
    matter_id = Column(Integer, ForeignKey("matters.id"), nullable=False, index=True)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=True)
    hearing_type = Column(String(255), nullable=True)
    start_at = Column(DateTime, nullable=True, index=True)  # UTC
    end_at = Column(DateTime, nullable=True)
    courtroom = Column(String(100), nullable=True)
    judge_or_alj = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)  # Appended to by email replies, never overwritten
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    matter = relationship("Matter", back_populates="hearings")
    court = relationship("Court")

    @property
    def court_name(self):
        return self.court.name if self.court else None


class MatterSettings(Base):
    __tablename__ = "matter_settings"

    id = Column(Integer, primary_key=True, index=True)
    matter_id = Column(Integer, ForeignKey("matters.id"), nullable=False, unique=True)
    calendar_reminders_enabled = Column(Boolean, default=False, nullable=False)
    notify_relevant_parties = Column(Boolean, default=False, nullable=False)
    reminder_days_before = Column(JSON, nullable=True)  # e.g. [7, 3, 1]
    # [{"name", "email", "notify_deadlines", "notify_hearings"}]
    relevant_parties = Column(JSON, nullable=True)

    matter = relationship("Matter", back_populates="settings")


class Communication(Base):
    __tablename__ = "communications"

    id = Column(Integer, primary_key=True, index=True)
    matter_id = Column(Integer, ForeignKey("matters.id"), nullable=False, index=True)
    channel = Column(String(50), nullable=False)  # Email, Phone, SMS, Portal
    direction = Column(String(20), nullable=False)  # Inbound, Outbound
    to_address = Column(String(500), nullable=True)
    from_address = Column(String(500), nullable=True)
    body = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    meta = Column(JSON, nullable=True)


# ============================================
# Optional tracking tables
# Feature-detected at runtime (see database.detect_schema_features)
# ============================================


class EmailReminder(Base):
    """Dedupe ledger for deadline reminders: one row per deadline/offset/day"""

    __tablename__ = "email_reminders"
    __table_args__ = (
        UniqueConstraint("deadline_id", "reminder_days", "sent_on", name="uq_email_reminder_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    deadline_id = Column(Integer, nullable=False, index=True)
    reminder_days = Column(Integer, nullable=False)
    sent_on = Column(Date, nullable=False)  # Firm-local calendar day
    sent_at = Column(DateTime, nullable=False)
    message_ids = Column(JSON, default=list)


class HearingReminder(Base):
    """Dedupe ledger for hearing reminders: one row per hearing/offset/day"""

    __tablename__ = "hearing_reminders"
    __table_args__ = (
        UniqueConstraint("hearing_id", "reminder_days", "sent_on", name="uq_hearing_reminder_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hearing_id = Column(Integer, nullable=False, index=True)
    reminder_days = Column(Integer, nullable=False)
    sent_on = Column(Date, nullable=False)
    sent_at = Column(DateTime, nullable=False)
    message_ids = Column(JSON, default=list)


class DeadlineNote(Base):
    __tablename__ = "deadline_notes"

    id = Column(Integer, primary_key=True, index=True)
    deadline_id = Column(Integer, nullable=False, index=True)
    note = Column(Text, nullable=False)
    created_by_email = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class EmailEvent(Base):
    __tablename__ = "email_events"

    id = Column(Integer, primary_key=True, index=True)
    provider_message_id = Column(String(255), nullable=True, index=True)
    event_type = Column(String(50), nullable=False)  # delivered, open, click, bounce, dropped...
    email = Column(String(500), nullable=True)
    timestamp = Column(DateTime, nullable=True)
    matter_id = Column(Integer, nullable=True, index=True)
    deadline_id = Column(Integer, nullable=True)
    hearing_id = Column(Integer, nullable=True)
    event_data = Column(JSON, nullable=True)


class Notification(Base):
    """In-app notification shown in the staff notification panel"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, default="system")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False)  # message, system
    priority = Column(String(20), default="medium")  # low, medium, high
    related_matter_id = Column(Integer, nullable=True, index=True)
    action_url = Column(String(500), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
