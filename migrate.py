"""
Bring an existing database up to the current reminder schema.
Usage:  BOOTSTRAP_JOBS_ON_IMPORT=0 python migrate.py

Missing tables are created by db.create_all() when app is imported. This
script adds the advance_notice_days column to a reminders table that predates
it. Safe to run repeatedly.
"""
import os

os.environ.setdefault('BOOTSTRAP_JOBS_ON_IMPORT', '0')

from sqlalchemy import inspect

from app import app, db


def ensure_reminder_columns():
    cols = {col['name'] for col in inspect(db.engine).get_columns('reminders')}
    if 'advance_notice_days' in cols:
        return False
    with db.engine.begin() as conn:
        conn.execute(db.text("ALTER TABLE reminders ADD COLUMN advance_notice_days INTEGER NOT NULL DEFAULT 7"))
    print("[add] reminders.advance_notice_days added")
    return True


def main():
    with app.app_context():
        if not ensure_reminder_columns():
            print("[skip] reminders.advance_notice_days already exists")
        print("Reminder schema is up to date.")


if __name__ == '__main__':
    main()
