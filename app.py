import os

from dotenv import load_dotenv
from flask import Flask, jsonify, request, session
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

from background_jobs import start_reminder_scheduler
from backend.auth import get_current_user
from backend.errors import HubError, StorageError
from backend.notification_scheduler import run_reminder_tick
from models import db, User
from services import calendar_routes, email_action_routes, preferences_routes, reminder_routes

app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///hub.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['PERMANENT_SESSION_LIFETIME'] = 365 * 24 * 60 * 60  # 1 year in seconds
app.config['API_SHARED_KEY'] = os.environ.get('API_SHARED_KEY')  # Optional shared key for API callers
app.config['DEFAULT_TIMEZONE'] = os.environ.get('DEFAULT_TIMEZONE', 'UTC')
app.config['HUB_BASE_URL'] = os.environ.get('HUB_BASE_URL', 'http://localhost:5000')

# Email delivery: Postmark when a server token is set, else SMTP
app.config['POSTMARK_API_KEY'] = os.environ.get('POSTMARK_API_KEY')
app.config['EMAIL_FROM'] = os.environ.get('EMAIL_FROM', 'noreply@localhost')
app.config['SMTP_HOST'] = os.environ.get('SMTP_HOST')
app.config['SMTP_PORT'] = int(os.environ.get('SMTP_PORT', '587'))
app.config['SMTP_USER'] = os.environ.get('SMTP_USER')
app.config['SMTP_PASSWORD'] = os.environ.get('SMTP_PASSWORD')
app.config['SMTP_FROM'] = os.environ.get('SMTP_FROM')
app.config['EMAIL_TIMEOUT_SECONDS'] = float(os.environ.get('EMAIL_TIMEOUT_SECONDS', '10'))

# Reminder engine
app.config['REMINDER_EMAIL_HOUR'] = int(os.environ.get('REMINDER_EMAIL_HOUR', '7'))
app.config['REMINDER_TIMEZONE_MODE'] = os.environ.get('REMINDER_TIMEZONE_MODE', 'local').strip().lower()
app.config['ACTION_TOKEN_TTL_DAYS'] = int(os.environ.get('ACTION_TOKEN_TTL_DAYS', '7'))
app.config['HISTORY_DAYS'] = int(os.environ.get('HISTORY_DAYS', '90'))
app.config['CALENDAR_NAME'] = os.environ.get('CALENDAR_NAME', 'Hub Reminders')

db.init_app(app)
scheduler = None

with app.app_context():
    db.create_all()


@app.errorhandler(HubError)
def handle_hub_error(exc):
    db.session.rollback()
    if exc.status_code >= 500:
        app.logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc.message)
    return jsonify(exc.to_dict()), exc.status_code


@app.errorhandler(SQLAlchemyError)
def handle_storage_error(exc):
    db.session.rollback()
    app.logger.exception("Database error on %s %s", request.method, request.path)
    error = StorageError('Database error')
    return jsonify(error.to_dict()), error.status_code


# User Selection Routes
@app.route('/api/set-user/<int:user_id>', methods=['POST'])
def set_user(user_id):
    """Set the current user in session"""
    user = db.get_or_404(User, user_id)
    session['user_id'] = user.id
    session.permanent = True  # Make session persistent across browser restarts
    return jsonify({'success': True, 'username': user.username})


@app.route('/api/current-user')
def current_user_info():
    """Get current user info"""
    user = get_current_user()
    if user:
        return jsonify({'user_id': user.id, 'username': user.username})
    return jsonify({'user_id': None, 'username': None})


@app.route('/api/health')
def health():
    return jsonify({'status': 'ok'})


# Reminders
app.add_url_rule('/api/reminders', view_func=reminder_routes.api_reminders, methods=['GET', 'POST'])
app.add_url_rule('/api/reminders/snoozed', view_func=reminder_routes.api_reminders_snoozed, methods=['GET'])
app.add_url_rule('/api/reminders/history', view_func=reminder_routes.api_reminders_history, methods=['GET'])
app.add_url_rule(
    '/api/reminders/<int:reminder_id>',
    view_func=reminder_routes.api_reminder_detail,
    methods=['GET', 'PUT', 'PATCH', 'DELETE'],
)
app.add_url_rule(
    '/api/reminders/<int:reminder_id>/snooze',
    view_func=reminder_routes.api_reminder_snooze,
    methods=['POST', 'DELETE'],
)
app.add_url_rule(
    '/api/reminders/<int:reminder_id>/ignore',
    view_func=reminder_routes.api_reminder_ignore,
    methods=['POST', 'DELETE'],
)
app.add_url_rule(
    '/api/reminders/<int:reminder_id>/complete',
    view_func=reminder_routes.api_reminder_complete,
    methods=['POST', 'DELETE'],
)

# Calendar subscription + capabilities
app.add_url_rule('/calendar.ics', view_func=calendar_routes.calendar_feed, methods=['GET'])
app.add_url_rule('/api/calendar/feed', endpoint='calendar_feed_api', view_func=calendar_routes.calendar_feed, methods=['GET'])
app.add_url_rule('/api/calendar/token', view_func=calendar_routes.api_calendar_token, methods=['GET'])
app.add_url_rule(
    '/api/calendar/token/regenerate',
    view_func=calendar_routes.api_calendar_token_regenerate,
    methods=['POST'],
)
app.add_url_rule('/api/calendar/permissions', view_func=calendar_routes.api_calendar_permissions, methods=['GET'])
app.add_url_rule('/api/calendar/send-now', view_func=calendar_routes.api_calendar_send_now, methods=['POST'])

# One-click email links
app.add_url_rule('/api/email-action/<token>', view_func=email_action_routes.email_action, methods=['GET'])

app.add_url_rule('/api/preferences', view_func=preferences_routes.api_preferences, methods=['GET', 'PUT'])


def _start_scheduler():
    """Start the hourly reminder email job."""
    global scheduler
    if scheduler and scheduler.running:
        return
    scheduler = start_reminder_scheduler(app, run_reminder_tick)


# Start scheduler on process startup (not request-dependent).
# Can be disabled for tooling/scripts that only need app context.
if os.environ.get('BOOTSTRAP_JOBS_ON_IMPORT', '1') == '1':
    try:
        _start_scheduler()
    except Exception as e:
        app.logger.error(f"Error starting scheduler on startup: {e}")


if __name__ == '__main__':
    app.run(host='0.0.0.0', debug=True)
