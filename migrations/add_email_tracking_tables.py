"""
Add email tracking tables

Migration to add the optional tables used by the notification subsystem:
- email_reminders (deadline reminder dedupe ledger)
- hearing_reminders (hearing reminder dedupe ledger)
- deadline_notes
- email_events
- notifications

The application runs without any of them; each table switches on its feature.

Run with: python migrations/add_email_tracking_tables.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect

from docket.database import OPTIONAL_TABLES, Base, detect_schema_features, engine
from docket import models  # noqa: F401


def upgrade(bind=engine):
    """Create the optional email tables that don't exist yet"""
    existing_tables = set(inspect(bind).get_table_names())

    for name in OPTIONAL_TABLES:
        if name in existing_tables:
            print(f"ℹ️  {name} table already exists")
            continue
        Base.metadata.tables[name].create(bind=bind, checkfirst=True)
        print(f"✅ Created {name} table")

    detect_schema_features.cache_clear()
    print("\n✅ Migration completed successfully!")


def downgrade(bind=engine):
    """Drop the optional email tables"""
    for name in reversed(OPTIONAL_TABLES):
        Base.metadata.tables[name].drop(bind=bind, checkfirst=True)
        print(f"✅ Dropped {name} table")

    detect_schema_features.cache_clear()
    print("✅ Migration rolled back successfully!")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage email tracking tables migration")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        print("Rolling back migration...")
        downgrade()
    else:
        print("Running migration...")
        upgrade()
