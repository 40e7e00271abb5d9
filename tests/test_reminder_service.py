from datetime import date, datetime

import pytest

from backend import reminder_service
from backend.action_tokens import issue_action_tokens, redeem_action_token
from backend.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from backend.permissions import calendar_permissions
from models import db, EmailActionToken, Reminder, ReminderEmailLog, ReminderUserState
from tests.helpers import ALL_SCOPES, USER_SCOPES


def _caps(scopes):
    return calendar_permissions(set(scopes.split(',')))


def _state(user, reminder_id, occurrence_date):
    return ReminderUserState.query.filter_by(
        user_id=user.id, reminder_id=reminder_id, occurrence_date=occurrence_date
    ).first()


def test_create_reminder_applies_defaults(make_user):
    user = make_user()
    reminder = reminder_service.create_reminder(
        user, {'title': 'Renew car insurance', 'next_due': '2025-06-01'}, _caps(USER_SCOPES)
    )
    assert reminder.id is not None
    assert reminder.advance_notice_days == 7
    assert reminder.is_global is False
    assert reminder.owner_id == user.id


def test_create_global_requires_global_add(make_user):
    user = make_user()
    with pytest.raises(PermissionDeniedError):
        reminder_service.create_reminder(
            user, {'title': 'Office fire drill', 'next_due': '2025-06-01', 'is_global': True}, _caps(USER_SCOPES)
        )
    assert Reminder.query.count() == 0


def test_create_without_any_add_scope(make_user):
    user = make_user(scopes='cal:read')
    with pytest.raises(PermissionDeniedError) as excinfo:
        reminder_service.create_reminder(user, {'title': 'x', 'next_due': '2025-06-01'}, _caps('cal:read'))
    assert excinfo.value.message == 'Forbidden: Calendar add access required'


def test_create_with_unknown_document(make_user):
    user = make_user()
    with pytest.raises(NotFoundError):
        reminder_service.create_reminder(
            user, {'title': 'x', 'next_due': '2025-06-01', 'doc_id': 999}, _caps(USER_SCOPES)
        )


def test_invalid_payload_creates_nothing(make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        reminder_service.create_reminder(user, {'title': 'x', 'next_due': '2025-13-01'}, _caps(USER_SCOPES))
    assert Reminder.query.count() == 0


def test_update_promote_to_global_needs_global_add(make_user, make_reminder):
    user = make_user(scopes=USER_SCOPES)
    reminder = make_reminder(user)
    with pytest.raises(PermissionDeniedError) as excinfo:
        reminder_service.update_reminder(user, reminder.id, {'is_global': True}, _caps(USER_SCOPES))
    assert excinfo.value.message == 'Forbidden: Cannot make reminder global'


def test_update_other_users_reminder_needs_global_edit(make_user, make_reminder):
    owner = make_user()
    other = make_user()
    reminder = make_reminder(owner)
    with pytest.raises(PermissionDeniedError):
        reminder_service.update_reminder(other, reminder.id, {'title': 'Hijacked'}, _caps(USER_SCOPES))
    updated = reminder_service.update_reminder(other, reminder.id, {'title': 'Fixed typo'}, _caps(ALL_SCOPES))
    assert updated.title == 'Fixed typo'


def test_personal_reminders_are_private(make_user, make_reminder):
    owner = make_user()
    other = make_user()
    personal = make_reminder(owner, title='Dentist')
    make_reminder(owner, title='Team offsite', is_global=True)

    titles = [r['title'] for r in reminder_service.list_reminders(other, today=date(2025, 3, 1))]
    assert titles == ['Team offsite']
    with pytest.raises(NotFoundError):
        reminder_service.get_reminder_payload(other, personal.id, today=date(2025, 3, 1))


def test_list_filters_and_order(make_user, make_reminder):
    user = make_user()
    make_reminder(user, title='Later', next_due=date(2025, 5, 1))
    make_reminder(user, title='Past', next_due=date(2025, 2, 1))
    make_reminder(user, title='Soon', next_due=date(2025, 3, 5))

    today = date(2025, 3, 1)
    assert [r['title'] for r in reminder_service.list_reminders(user, 'all', today)] == ['Past', 'Soon', 'Later']
    assert [r['title'] for r in reminder_service.list_reminders(user, 'upcoming', today)] == ['Soon', 'Later']
    assert [r['title'] for r in reminder_service.list_reminders(user, 'past', today)] == ['Past']
    with pytest.raises(ValidationError):
        reminder_service.list_reminders(user, 'soonish', today)


def test_payload_carries_state_and_due_status(make_user, make_reminder):
    user = make_user()
    reminder = make_reminder(user, next_due=date(2025, 3, 5), rrule='FREQ=MONTHLY;INTERVAL=3')
    reminder_service.snooze_reminder(user, reminder.id, today=date(2025, 3, 1))

    payload = reminder_service.get_reminder_payload(user, reminder.id, today=date(2025, 3, 1))
    assert payload['snoozed'] is True
    assert payload['status'] == 'snoozed'
    assert payload['due_status'] == 'in-window'
    assert payload['recurrence_label'] == 'Quarterly'


def test_snooze_rejected_on_due_date(make_user, make_reminder):
    user = make_user()
    reminder = make_reminder(user, next_due=date(2025, 3, 1))
    with pytest.raises(InvalidStateError):
        reminder_service.snooze_reminder(user, reminder.id, today=date(2025, 3, 1))
    assert _state(user, reminder.id, date(2025, 3, 1)) is None


def test_snooze_and_unsnooze_toggle_one_row(make_user, make_reminder):
    user = make_user()
    reminder = make_reminder(user, next_due=date(2025, 3, 8))
    reminder_service.snooze_reminder(user, reminder.id, today=date(2025, 3, 1))
    reminder_service.snooze_reminder(user, reminder.id, today=date(2025, 3, 1))
    result = reminder_service.unsnooze_reminder(user, reminder.id)

    assert result['state']['snoozed'] is False
    assert ReminderUserState.query.count() == 1


def test_complete_recurring_advances_and_clamps(make_user, make_reminder):
    user = make_user()
    reminder = make_reminder(user, next_due=date(2025, 1, 31), rrule='FREQ=MONTHLY')

    result = reminder_service.complete_reminder(user, reminder.id)

    assert result['occurrence_date'] == '2025-01-31'
    assert result['next_due'] == '2025-02-28'
    old = _state(user, reminder.id, date(2025, 1, 31))
    assert old.completed is True
    assert old.actioned_at is not None
    assert _state(user, reminder.id, date(2025, 2, 28)) is None


def test_complete_one_time_keeps_due_date(make_user, make_reminder):
    user = make_user()
    reminder = make_reminder(user, next_due=date(2025, 3, 10))
    result = reminder_service.complete_reminder(user, reminder.id)
    assert result['next_due'] == '2025-03-10'
    assert result['state']['status'] == 'completed'


def test_stale_advance_is_a_no_op(make_user, make_reminder):
    user = make_user()
    reminder = make_reminder(user, next_due=date(2025, 1, 6), rrule='FREQ=WEEKLY')
    reminder_service.ignore_reminder(user, reminder.id)

    # A second request still holding the old occurrence date must not move it again
    assert reminder_service.advance_reminder(reminder, date(2025, 1, 6)) is None
    db.session.commit()
    db.session.expire_all()
    assert db.session.get(Reminder, reminder.id).next_due == date(2025, 1, 13)


def test_unignore_does_not_roll_back(make_user, make_reminder):
    user = make_user()
    reminder = make_reminder(user, next_due=date(2025, 1, 6), rrule='FREQ=WEEKLY')
    reminder_service.ignore_reminder(user, reminder.id)

    result = reminder_service.unignore_reminder(user, reminder.id, '2025-01-06')

    assert result['next_due'] == '2025-01-13'
    assert result['state']['ignored'] is False


def test_uncomplete_clears_actioned_at(make_user, make_reminder):
    user = make_user()
    reminder = make_reminder(user, next_due=date(2025, 3, 10))
    reminder_service.complete_reminder(user, reminder.id)
    result = reminder_service.uncomplete_reminder(user, reminder.id)
    assert result['state']['completed'] is False
    assert result['state']['actioned_at'] is None


def test_state_is_per_user_on_global_reminders(make_user, make_reminder):
    admin = make_user(scopes=ALL_SCOPES)
    member = make_user()
    reminder = make_reminder(admin, next_due=date(2025, 3, 8), is_global=True)

    reminder_service.snooze_reminder(member, reminder.id, today=date(2025, 3, 1))

    assert reminder_service.get_reminder_payload(member, reminder.id, date(2025, 3, 1))['snoozed'] is True
    assert reminder_service.get_reminder_payload(admin, reminder.id, date(2025, 3, 1))['snoozed'] is False


def test_snoozed_and_history_views(make_user, make_reminder):
    user = make_user()
    snoozed = make_reminder(user, title='Snoozed', next_due=date(2025, 3, 8))
    done = make_reminder(user, title='Done', next_due=date(2025, 3, 9), rrule='FREQ=YEARLY')
    reminder_service.snooze_reminder(user, snoozed.id, today=date(2025, 3, 1))
    reminder_service.complete_reminder(user, done.id)

    assert [r['title'] for r in reminder_service.list_snoozed(user, today=date(2025, 3, 1))] == ['Snoozed']
    history = reminder_service.list_history(user)
    assert len(history) == 1
    assert history[0]['title'] == 'Done'
    assert history[0]['occurrence_date'] == '2025-03-09'
    assert history[0]['next_due'] == '2026-03-09'


def test_delete_requires_scope(make_user, make_reminder):
    user = make_user(scopes='cal:read,cal:add:user')
    reminder = make_reminder(user)
    with pytest.raises(PermissionDeniedError):
        reminder_service.delete_reminder(user, reminder.id, _caps('cal:read,cal:add:user'))
    reminder_service.delete_reminder(user, reminder.id, _caps(USER_SCOPES))
    assert db.session.get(Reminder, reminder.id) is None


def test_delete_clears_history_and_email_links(make_user):
    user = make_user()
    caps = _caps(USER_SCOPES)
    old = reminder_service.create_reminder(
        user, {'title': 'Old', 'next_due': '2025-03-10', 'rrule': 'FREQ=MONTHLY'}, caps
    )
    old_id = old.id
    reminder_service.ignore_reminder(user, old_id)
    tokens = issue_action_tokens(user.id, old_id, date(2025, 4, 10))
    db.session.add(ReminderEmailLog(user_id=user.id, reminder_id=old_id, occurrence_date=date(2025, 4, 10)))
    db.session.commit()

    reminder_service.delete_reminder(user, old_id, caps)
    new = reminder_service.create_reminder(
        user, {'title': 'Brand new', 'next_due': '2025-04-10', 'rrule': 'FREQ=MONTHLY'}, caps
    )

    assert new.id != old_id
    assert ReminderUserState.query.count() == 0
    assert ReminderEmailLog.query.count() == 0
    assert EmailActionToken.query.count() == 0
    with pytest.raises(NotFoundError):
        redeem_action_token(tokens['ignore'], now=datetime(2025, 4, 1, 9, 0))
    db.session.expire_all()
    assert db.session.get(Reminder, new.id).next_due == date(2025, 4, 10)


def test_complete_with_unreachable_next_date_keeps_due_date(make_user, make_reminder):
    user = make_user()
    # Rows written outside the API can still carry an interval it would refuse
    reminder = make_reminder(user, next_due=date(2025, 3, 10), rrule='FREQ=YEARLY;INTERVAL=99999')

    result = reminder_service.complete_reminder(user, reminder.id)

    assert result['next_due'] == '2025-03-10'
    assert result['state']['completed'] is True


def test_create_rejects_out_of_range_interval(make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        reminder_service.create_reminder(
            user, {'title': 'Far', 'next_due': '2025-03-10', 'rrule': 'FREQ=YEARLY;INTERVAL=99999'}, _caps(USER_SCOPES)
        )
    assert Reminder.query.count() == 0
