"""
Due-window classification shared by the reminder list endpoints and the
notification scheduler. Both paths must call classify_due() so that what the
UI highlights and what gets emailed never diverge.
"""

from datetime import timedelta

NOT_YET = 'not-yet'
IN_WINDOW = 'in-window'
DUE_TODAY = 'due-today'
PAST_DUE = 'past-due'


def window_start(next_due, advance_notice_days):
    return next_due - timedelta(days=int(advance_notice_days or 0))


def classify_due(today, next_due, advance_notice_days):
    """Return exactly one of NOT_YET, IN_WINDOW, DUE_TODAY, PAST_DUE."""
    if today > next_due:
        return PAST_DUE
    if today == next_due:
        return DUE_TODAY
    if today >= window_start(next_due, advance_notice_days):
        return IN_WINDOW
    return NOT_YET


def is_in_window(status):
    """DUE_TODAY counts as inside the advance window."""
    return status in (IN_WINDOW, DUE_TODAY)


def notification_skip_reason(status, state=None, already_sent=False):
    """
    Decide whether an occurrence should be emailed. Returns None to send, or a
    short reason string for the skip. state is a ReminderUserState or None.
    """
    if not is_in_window(status):
        return 'outside-window'
    if state is not None and state.ignored:
        return 'ignored'
    if state is not None and state.completed:
        return 'completed'
    # The due-today email is the final reminder and overrides snooze
    if state is not None and state.snoozed and status != DUE_TODAY:
        return 'snoozed'
    if already_sent:
        return 'already-sent'
    return None
