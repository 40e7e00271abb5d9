import os
import threading

from apscheduler.schedulers.background import BackgroundScheduler

REMINDER_JOB_ID = 'reminder_notifications'


def start_daemon_thread(target, args=(), kwargs=None):
    """Start a daemon thread with a consistent helper API."""
    thread = threading.Thread(target=target, args=args, kwargs=kwargs or {}, daemon=True)
    thread.start()
    return thread


def start_app_context_job(app, target, args=(), kwargs=None, on_error=None):
    """
    Run a callable in a daemon thread inside the provided Flask app context.
    """

    def _run():
        with app.app_context():
            try:
                target(*args, **(kwargs or {}))
            except Exception as exc:
                if on_error:
                    on_error(exc)
                else:
                    app.logger.exception("Background job %s failed", getattr(target, '__name__', target))

    return start_daemon_thread(_run)


def app_context_job(app, target):
    """Wrap a callable so each scheduler run gets its own app context."""

    def _run():
        with app.app_context():
            try:
                target()
            except Exception:
                app.logger.exception("Scheduled job %s failed", getattr(target, '__name__', target))

    _run.__name__ = getattr(target, '__name__', 'app_context_job')
    return _run


def start_reminder_scheduler(app, tick, catch_up=True):
    """
    Hourly cron at minute 0 (UTC) running `tick` inside the app context.
    Returns the running scheduler, or None when jobs are disabled or this is
    the reloader parent process.
    """
    if os.environ.get('ENABLE_REMINDER_JOBS', '1') != '1':
        app.logger.info("Reminder jobs disabled by ENABLE_REMINDER_JOBS")
        return None
    # Avoid double-start in Flask debug reloader
    if app.debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return None

    scheduler = BackgroundScheduler(timezone='UTC')
    scheduler.add_job(
        app_context_job(app, tick),
        'cron',
        hour='*',
        minute=0,
        id=REMINDER_JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    scheduler.start()
    app.logger.info("Reminder scheduler started")

    # Catch up if the server started partway through the send hour; the send log prevents repeats
    if catch_up:
        start_app_context_job(app, tick)
    return scheduler
