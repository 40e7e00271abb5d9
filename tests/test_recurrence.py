from datetime import date

from backend.recurrence import describe_recurrence, is_valid_rrule, next_occurrence, parse_rrule, rrule_interval


def test_weekly_adds_seven_days():
    assert next_occurrence('FREQ=WEEKLY', date(2025, 1, 6)) == date(2025, 1, 13)


def test_daily_and_interval():
    assert next_occurrence('FREQ=DAILY', date(2025, 12, 31)) == date(2026, 1, 1)
    assert next_occurrence('FREQ=WEEKLY;INTERVAL=2', date(2025, 1, 6)) == date(2025, 1, 20)


def test_monthly_clamps_to_month_end():
    assert next_occurrence('FREQ=MONTHLY', date(2025, 1, 31)) == date(2025, 2, 28)
    assert next_occurrence('FREQ=MONTHLY', date(2024, 1, 31)) == date(2024, 2, 29)


def test_quarterly_crosses_year_boundary():
    assert next_occurrence('FREQ=MONTHLY;INTERVAL=3', date(2025, 11, 30)) == date(2026, 2, 28)


def test_yearly_from_leap_day():
    assert next_occurrence('FREQ=YEARLY;INTERVAL=5', date(2024, 2, 29)) == date(2029, 2, 28)
    assert next_occurrence('FREQ=YEARLY', date(2024, 2, 29)) == date(2025, 2, 28)


def test_unknown_frequency_returns_none():
    assert next_occurrence('FREQ=HOURLY', date(2025, 1, 1)) is None
    assert next_occurrence('', date(2025, 1, 1)) is None


def test_step_past_last_date_returns_none():
    assert next_occurrence('FREQ=YEARLY;INTERVAL=99999', date(2025, 3, 10)) is None
    assert next_occurrence('FREQ=MONTHLY;INTERVAL=999999', date(2025, 3, 10)) is None
    assert next_occurrence('FREQ=DAILY;INTERVAL=9999999999', date(2025, 3, 10)) is None
    assert next_occurrence('FREQ=WEEKLY', date(9999, 12, 30)) is None


def test_rrule_interval_as_written():
    assert rrule_interval('FREQ=MONTHLY') == 1
    assert rrule_interval('FREQ=MONTHLY;INTERVAL=3') == 3
    assert rrule_interval('FREQ=MONTHLY;INTERVAL=0') == 0
    assert rrule_interval('FREQ=DAILY;INTERVAL=x') is None


def test_parse_rrule_defaults_interval():
    assert parse_rrule('FREQ=MONTHLY') == ('MONTHLY', 1)
    assert parse_rrule('FREQ=MONTHLY;INTERVAL=0') == ('MONTHLY', 1)
    assert parse_rrule('FREQ=DAILY;INTERVAL=x') == ('DAILY', 1)


def test_rrule_shape_validation():
    assert is_valid_rrule('FREQ=MONTHLY;INTERVAL=3')
    assert is_valid_rrule('FREQ=WEEKLY;BYDAY=MO,WE')
    assert not is_valid_rrule('FREQ=HOURLY')
    assert not is_valid_rrule('monthly')
    assert not is_valid_rrule(None)


def test_describe_recurrence_labels():
    assert describe_recurrence(None) is None
    assert describe_recurrence('FREQ=WEEKLY') == 'Weekly'
    assert describe_recurrence('FREQ=MONTHLY;INTERVAL=3') == 'Quarterly'
    assert describe_recurrence('FREQ=YEARLY') == 'Yearly'
