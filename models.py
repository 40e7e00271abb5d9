from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    # Comma-separated permission scopes, e.g. "cal:read,cal:add:user"
    permissions = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    reminders = db.relationship('Reminder', backref='owner', lazy=True, cascade="all, delete-orphan")
    preferences = db.relationship('UserPreference', backref='user', uselist=False, cascade="all, delete-orphan")

    def permission_scopes(self):
        return {p.strip() for p in (self.permissions or '').split(',') if p.strip()}


class UserPreference(db.Model):
    """Per-user notification and display preferences."""
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    email = db.Column(db.String(120), nullable=True)
    timezone = db.Column(db.String(64), nullable=False, default='UTC')
    email_notifications = db.Column(db.Boolean, nullable=False, default=False)
    theme = db.Column(db.String(20), default='system')
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'email': self.email,
            'timezone': self.timezone,
            'email_notifications': bool(self.email_notifications),
            'theme': self.theme or 'system',
        }


class Document(db.Model):
    """Markdown document, referenced by reminders for title/slug lookups."""
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {'id': self.id, 'title': self.title, 'slug': self.slug}


class Reminder(db.Model):
    """
    Recurring or one-time obligation. next_due always holds the live occurrence;
    ignoring or completing a recurring reminder moves it forward.
    """
    __tablename__ = 'reminders'
    # Deleted ids are never handed out again
    __table_args__ = {'sqlite_autoincrement': True}

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    rrule = db.Column(db.String(200), nullable=True)
    next_due = db.Column(db.Date, nullable=False)
    advance_notice_days = db.Column(db.Integer, nullable=False, default=7)
    doc_id = db.Column(db.Integer, db.ForeignKey('document.id', ondelete='SET NULL'), nullable=True)
    is_global = db.Column(db.Boolean, nullable=False, default=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    document = db.relationship('Document', lazy='joined')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'rrule': self.rrule,
            'next_due': self.next_due.isoformat() if self.next_due else None,
            'advance_notice_days': self.advance_notice_days,
            'doc_id': self.doc_id,
            'doc_title': self.document.title if self.document else None,
            'doc_slug': self.document.slug if self.document else None,
            'is_global': bool(self.is_global),
            'owner_id': self.owner_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class ReminderUserState(db.Model):
    """
    Per (user, reminder, occurrence_date) flags. Rows for dates other than the
    reminder's current next_due are history only.
    """
    __tablename__ = 'reminder_user_state'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'reminder_id', 'occurrence_date', name='uq_reminder_user_state_occurrence'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    reminder_id = db.Column(db.Integer, db.ForeignKey('reminders.id', ondelete='CASCADE'), nullable=False)
    occurrence_date = db.Column(db.Date, nullable=False)
    snoozed = db.Column(db.Boolean, nullable=False, default=False)
    ignored = db.Column(db.Boolean, nullable=False, default=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    actioned_at = db.Column(db.DateTime, nullable=True)

    @property
    def status(self):
        # snoozed + ignored together is never produced by the actions; resolved flags win
        if self.completed:
            return 'completed'
        if self.ignored:
            return 'ignored'
        if self.snoozed:
            return 'snoozed'
        return 'clean'

    def to_dict(self):
        return {
            'reminder_id': self.reminder_id,
            'occurrence_date': self.occurrence_date.isoformat(),
            'snoozed': bool(self.snoozed),
            'ignored': bool(self.ignored),
            'completed': bool(self.completed),
            'actioned_at': self.actioned_at.isoformat() if self.actioned_at else None,
            'status': self.status,
        }


class ReminderEmailLog(db.Model):
    """One row per successfully delivered notification for an occurrence."""
    __tablename__ = 'reminder_email_log'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'reminder_id', 'occurrence_date', name='uq_reminder_email_log_occurrence'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    reminder_id = db.Column(db.Integer, db.ForeignKey('reminders.id', ondelete='CASCADE'), nullable=False)
    occurrence_date = db.Column(db.Date, nullable=False)
    sent_at = db.Column(db.DateTime, default=datetime.utcnow)


class EmailActionToken(db.Model):
    """Single-use snooze/ignore capability embedded in notification emails."""
    __tablename__ = 'email_action_tokens'

    token = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    reminder_id = db.Column(db.Integer, db.ForeignKey('reminders.id', ondelete='CASCADE'), nullable=False)
    occurrence_date = db.Column(db.Date, nullable=False)
    action = db.Column(db.String(10), nullable=False)  # snooze | ignore
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class CalendarToken(db.Model):
    """Per-user secret for the read-only iCal subscription feed."""
    __tablename__ = 'calendar_tokens'

    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    token = db.Column(db.String(64), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
