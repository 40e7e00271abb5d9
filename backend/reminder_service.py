"""
Reminder repository and per-occurrence action processor.

Occurrence state is keyed by (user, reminder, occurrence_date) where the
occurrence date is the reminder's next_due at the time of the action. Moving
next_due forward therefore starts the new occurrence with no state row, and
the old row stays behind as history.
"""

from datetime import timedelta

from flask import current_app
from sqlalchemy import or_

from backend.clock import utc_now
from backend.due_window import DUE_TODAY, classify_due
from backend.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from backend.permissions import can_add_any, require
from backend.preferences import today_for_user
from backend.recurrence import describe_recurrence, next_occurrence
from backend.storage import upsert
from models import db, Document, EmailActionToken, Reminder, ReminderEmailLog, ReminderUserState
from services.validation_service import parse_day_value, validate_reminder_payload

LIST_FILTERS = ('all', 'upcoming', 'past')


def get_document(doc_id):
    """Document lookup collaborator: {id, title, slug} or None."""
    if doc_id is None:
        return None
    doc = db.session.get(Document, doc_id)
    return doc.to_dict() if doc else None


def visible_reminders_query(user_id):
    return Reminder.query.filter(or_(Reminder.owner_id == user_id, Reminder.is_global.is_(True)))


def get_visible_reminder(user_id, reminder_id):
    reminder = visible_reminders_query(user_id).filter(Reminder.id == reminder_id).first()
    if not reminder:
        raise NotFoundError('Reminder not found')
    return reminder


def current_state(user_id, reminder):
    return ReminderUserState.query.filter_by(
        user_id=user_id,
        reminder_id=reminder.id,
        occurrence_date=reminder.next_due,
    ).first()


def _current_state_map(user_id, reminders):
    if not reminders:
        return {}
    rows = ReminderUserState.query.filter(
        ReminderUserState.user_id == user_id,
        ReminderUserState.reminder_id.in_([r.id for r in reminders]),
    ).all()
    due_by_id = {r.id: r.next_due for r in reminders}
    return {
        row.reminder_id: row
        for row in rows
        if due_by_id.get(row.reminder_id) == row.occurrence_date
    }


def serialize_reminder(reminder, state, today):
    data = reminder.to_dict()
    data.update({
        'snoozed': bool(state.snoozed) if state else False,
        'ignored': bool(state.ignored) if state else False,
        'completed': bool(state.completed) if state else False,
        'actioned_at': state.actioned_at.isoformat() if state and state.actioned_at else None,
        'status': state.status if state else 'clean',
        'due_status': classify_due(today, reminder.next_due, reminder.advance_notice_days),
        'recurrence_label': describe_recurrence(reminder.rrule),
    })
    return data


def list_reminders(user, filter_name='all', today=None):
    """Visible reminders (own + global) with current occurrence state, soonest first."""
    if filter_name not in LIST_FILTERS:
        raise ValidationError('filter must be all, upcoming, or past')
    today = today or today_for_user(user.id)
    query = visible_reminders_query(user.id)
    if filter_name == 'upcoming':
        query = query.filter(Reminder.next_due >= today)
    elif filter_name == 'past':
        query = query.filter(Reminder.next_due < today)
    reminders = query.order_by(Reminder.next_due.asc(), Reminder.id.asc()).all()
    states = _current_state_map(user.id, reminders)
    return [serialize_reminder(r, states.get(r.id), today) for r in reminders]


def get_reminder_payload(user, reminder_id, today=None):
    reminder = get_visible_reminder(user.id, reminder_id)
    today = today or today_for_user(user.id)
    return serialize_reminder(reminder, current_state(user.id, reminder), today)


def _ensure_document(doc_id):
    if doc_id is not None and get_document(doc_id) is None:
        raise NotFoundError('Document not found')


def create_reminder(user, data, capabilities):
    if not can_add_any(capabilities):
        raise PermissionDeniedError('Forbidden: Calendar add access required')
    cleaned = validate_reminder_payload(data)
    if cleaned['is_global']:
        require('add', capabilities, True, True, 'Forbidden: Cannot create global reminders')
    else:
        require('add', capabilities, False, True, 'Forbidden: Cannot create reminders')
    _ensure_document(cleaned.get('doc_id'))

    now = utc_now()
    reminder = Reminder(
        title=cleaned['title'],
        description=cleaned.get('description'),
        rrule=cleaned.get('rrule'),
        next_due=cleaned['next_due'],
        advance_notice_days=cleaned['advance_notice_days'],
        doc_id=cleaned.get('doc_id'),
        is_global=cleaned['is_global'],
        owner_id=user.id,
        created_at=now,
        updated_at=now,
    )
    db.session.add(reminder)
    db.session.commit()
    current_app.logger.info("Reminder %s created by user %s (global=%s)", reminder.id, user.id, reminder.is_global)
    return reminder


def _load_reminder(reminder_id):
    reminder = db.session.get(Reminder, reminder_id)
    if not reminder:
        raise NotFoundError('Reminder not found')
    return reminder


def update_reminder(user, reminder_id, data, capabilities):
    """Partial update. Permission follows the stored scope/ownership, not the requested one."""
    reminder = _load_reminder(reminder_id)
    is_owner = reminder.owner_id == user.id
    require('edit', capabilities, reminder.is_global, is_owner, 'Forbidden: Cannot edit this reminder')

    cleaned = validate_reminder_payload(data, partial=True)
    if cleaned.get('is_global') and not reminder.is_global and not capabilities.get('canAddGlobal'):
        raise PermissionDeniedError('Forbidden: Cannot make reminder global')
    if 'doc_id' in cleaned:
        _ensure_document(cleaned['doc_id'])

    for field, value in cleaned.items():
        setattr(reminder, field, value)
    reminder.updated_at = utc_now()
    db.session.commit()
    return reminder


def delete_reminder(user, reminder_id, capabilities):
    reminder = _load_reminder(reminder_id)
    is_owner = reminder.owner_id == user.id
    require('delete', capabilities, reminder.is_global, is_owner, 'Forbidden: Cannot delete this reminder')
    # SQLite does not enforce the ON DELETE CASCADE keys unless asked to
    for model in (ReminderUserState, ReminderEmailLog, EmailActionToken):
        model.query.filter(model.reminder_id == reminder.id).delete(synchronize_session=False)
    db.session.delete(reminder)
    db.session.commit()
    current_app.logger.info("Reminder %s deleted by user %s", reminder_id, user.id)


def set_occurrence_flags(user_id, reminder_id, occurrence_date, **flags):
    """Upsert flags for one occurrence without touching the flags not named."""
    upsert(
        ReminderUserState,
        {'user_id': user_id, 'reminder_id': reminder_id, 'occurrence_date': occurrence_date},
        flags,
    )


def advance_reminder(reminder, occurrence_date, now=None):
    """
    Move a recurring reminder from occurrence_date to its next occurrence. The
    update only applies while next_due still equals occurrence_date, so two
    concurrent completes advance it once. Does not commit.
    """
    if not reminder.rrule:
        return None
    new_due = next_occurrence(reminder.rrule, occurrence_date)
    if new_due is None:
        current_app.logger.warning("Reminder %s has no next occurrence for rrule %r; not advancing", reminder.id, reminder.rrule)
        return None
    updated = Reminder.query.filter(
        Reminder.id == reminder.id,
        Reminder.next_due == occurrence_date,
    ).update({'next_due': new_due, 'updated_at': now or utc_now()}, synchronize_session=False)
    if not updated:
        current_app.logger.info("Reminder %s already moved past %s", reminder.id, occurrence_date)
        return None
    return new_due


def resolve_occurrence(user_id, reminder, flag, occurrence_date=None, now=None):
    """Mark the occurrence ignored/completed and roll a recurring reminder forward. Does not commit."""
    now = now or utc_now()
    occurrence_date = occurrence_date or reminder.next_due
    set_occurrence_flags(user_id, reminder.id, occurrence_date, **{flag: True, 'actioned_at': now})
    return advance_reminder(reminder, occurrence_date, now)


def _state_response(user_id, reminder, occurrence_date, action):
    db.session.expire_all()
    reminder = db.session.get(Reminder, reminder.id)
    state = ReminderUserState.query.filter_by(
        user_id=user_id, reminder_id=reminder.id, occurrence_date=occurrence_date
    ).first()
    return {
        'success': True,
        'action': action,
        'reminder_id': reminder.id,
        'occurrence_date': occurrence_date.isoformat(),
        'next_due': reminder.next_due.isoformat(),
        'state': state.to_dict() if state else None,
    }


def snooze_reminder(user, reminder_id, today=None):
    reminder = get_visible_reminder(user.id, reminder_id)
    today = today or today_for_user(user.id)
    if classify_due(today, reminder.next_due, reminder.advance_notice_days) == DUE_TODAY:
        raise InvalidStateError('Cannot snooze a reminder that is due today')
    occurrence_date = reminder.next_due
    set_occurrence_flags(user.id, reminder.id, occurrence_date, snoozed=True)
    db.session.commit()
    return _state_response(user.id, reminder, occurrence_date, 'snooze')


def unsnooze_reminder(user, reminder_id):
    reminder = get_visible_reminder(user.id, reminder_id)
    occurrence_date = reminder.next_due
    set_occurrence_flags(user.id, reminder.id, occurrence_date, snoozed=False)
    db.session.commit()
    return _state_response(user.id, reminder, occurrence_date, 'unsnooze')


def ignore_reminder(user, reminder_id):
    reminder = get_visible_reminder(user.id, reminder_id)
    occurrence_date = reminder.next_due
    resolve_occurrence(user.id, reminder, 'ignored', occurrence_date)
    db.session.commit()
    return _state_response(user.id, reminder, occurrence_date, 'ignore')


def complete_reminder(user, reminder_id):
    reminder = get_visible_reminder(user.id, reminder_id)
    occurrence_date = reminder.next_due
    resolve_occurrence(user.id, reminder, 'completed', occurrence_date)
    db.session.commit()
    return _state_response(user.id, reminder, occurrence_date, 'complete')


def _target_occurrence(reminder, raw_date):
    # Undo defaults to the live occurrence; an earlier, auto-advanced one can be named explicitly
    if raw_date in (None, ''):
        return reminder.next_due
    occurrence_date = parse_day_value(raw_date)
    if occurrence_date is None:
        raise ValidationError('occurrence_date must be in YYYY-MM-DD format')
    return occurrence_date


def unignore_reminder(user, reminder_id, occurrence_date=None):
    """Clears the ignored flag. An already advanced next_due is not rolled back."""
    reminder = get_visible_reminder(user.id, reminder_id)
    occurrence_date = _target_occurrence(reminder, occurrence_date)
    set_occurrence_flags(user.id, reminder.id, occurrence_date, ignored=False)
    db.session.commit()
    return _state_response(user.id, reminder, occurrence_date, 'unignore')


def uncomplete_reminder(user, reminder_id, occurrence_date=None):
    reminder = get_visible_reminder(user.id, reminder_id)
    occurrence_date = _target_occurrence(reminder, occurrence_date)
    set_occurrence_flags(user.id, reminder.id, occurrence_date, completed=False, actioned_at=None)
    db.session.commit()
    return _state_response(user.id, reminder, occurrence_date, 'uncomplete')


def list_snoozed(user, today=None):
    today = today or today_for_user(user.id)
    reminders = visible_reminders_query(user.id).order_by(Reminder.next_due.asc()).all()
    states = _current_state_map(user.id, reminders)
    return [
        serialize_reminder(r, states[r.id], today)
        for r in reminders
        if r.id in states and states[r.id].snoozed
    ]


def list_history(user, days=None):
    """Completed/ignored occurrences actioned within the last `days` days, newest first."""
    days = days or current_app.config.get('HISTORY_DAYS', 90)
    cutoff = utc_now() - timedelta(days=days)
    rows = db.session.query(ReminderUserState, Reminder).join(
        Reminder, Reminder.id == ReminderUserState.reminder_id
    ).filter(
        ReminderUserState.user_id == user.id,
        or_(ReminderUserState.completed.is_(True), ReminderUserState.ignored.is_(True)),
        ReminderUserState.actioned_at >= cutoff,
        or_(Reminder.owner_id == user.id, Reminder.is_global.is_(True)),
    ).order_by(ReminderUserState.actioned_at.desc()).all()

    history = []
    for state, reminder in rows:
        entry = state.to_dict()
        entry.update({
            'title': reminder.title,
            'rrule': reminder.rrule,
            'is_global': bool(reminder.is_global),
            'next_due': reminder.next_due.isoformat(),
        })
        history.append(entry)
    return history
