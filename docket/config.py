import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./docket.db")

# Frontend base URL for deep links in emails and notifications
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Docket <notifications@docketapp.com>")
# Domain used for reply-tracking addresses and Message-IDs (must route to the inbound webhook)
EMAIL_REPLY_DOMAIN = os.getenv("EMAIL_REPLY_DOMAIN", "docketapp.com")
# Hard ceiling on a single provider call so a hung provider can't stall a reminder run
EMAIL_SEND_TIMEOUT_SECONDS = float(os.getenv("EMAIL_SEND_TIMEOUT_SECONDS", "30"))

# Reminder scheduling
# Calendar days are computed in the firm's local timezone (IANA name)
FIRM_TIMEZONE = os.getenv("FIRM_TIMEZONE", "UTC")
DEFAULT_REMINDER_DAYS = [
    int(d) for d in os.getenv("DEFAULT_REMINDER_DAYS", "7,3,1").split(",") if d.strip()
]
REMINDER_CRON_HOUR = int(os.getenv("REMINDER_CRON_HOUR", "13"))  # UTC
REMINDER_CRON_MINUTE = int(os.getenv("REMINDER_CRON_MINUTE", "0"))

# Webhook / ops trigger shared secrets - verification is skipped when unset
EMAIL_WEBHOOK_SECRET = os.getenv("EMAIL_WEBHOOK_SECRET")
CRON_SECRET = os.getenv("CRON_SECRET")
