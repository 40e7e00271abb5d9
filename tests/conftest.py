import os
from datetime import date

os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['BOOTSTRAP_JOBS_ON_IMPORT'] = '0'
os.environ['ENABLE_REMINDER_JOBS'] = '0'
os.environ['API_SHARED_KEY'] = 'test-shared-key'

import pytest

from app import app as flask_app
from models import db, Document, Reminder, User, UserPreference
from tests.helpers import USER_SCOPES


@pytest.fixture
def app():
    flask_app.config.update(
        TESTING=True,
        HUB_BASE_URL='https://hub.example.com',
        DEFAULT_TIMEZONE='UTC',
        REMINDER_EMAIL_HOUR=7,
        REMINDER_TIMEZONE_MODE='local',
        ACTION_TOKEN_TTL_DAYS=7,
        HISTORY_DAYS=90,
        CALENDAR_NAME='Hub Reminders',
        POSTMARK_API_KEY='test-postmark-token',
        SMTP_HOST=None,
    )
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(scopes=USER_SCOPES, email=None, timezone='UTC', notifications=False):
        counter['n'] += 1
        user = User(username=f'user{counter["n"]}', permissions=scopes)
        db.session.add(user)
        db.session.flush()
        if email or notifications or timezone != 'UTC':
            db.session.add(UserPreference(
                user_id=user.id,
                email=email,
                timezone=timezone,
                email_notifications=notifications,
            ))
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_reminder(app):
    def _make(owner, title='Renew passport', next_due=date(2025, 3, 10), **fields):
        reminder = Reminder(
            title=title,
            next_due=next_due,
            owner_id=owner.id,
            advance_notice_days=fields.pop('advance_notice_days', 7),
            is_global=fields.pop('is_global', False),
            **fields,
        )
        db.session.add(reminder)
        db.session.commit()
        return reminder

    return _make


@pytest.fixture
def make_document(app):
    def _make(title='Passport checklist', slug='passport-checklist'):
        doc = Document(title=title, slug=slug)
        db.session.add(doc)
        db.session.commit()
        return doc

    return _make


