"""
One-click snooze/ignore links from reminder emails. Responds with HTML pages,
not JSON. Failures are rendered with status 200 as well.
"""

from flask import current_app
from markupsafe import escape

from backend.action_tokens import SUCCESS_MESSAGES, redeem_action_token
from backend.errors import HubError


def _page(title, heading, message, ok):
    dashboard = current_app.config.get('HUB_BASE_URL', '').rstrip('/') + '/calendar'
    colour = '#10b981' if ok else '#ef4444'
    icon = '&#10003;' if ok else '&#10007;'
    return f"""<!doctype html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)}</title>
  </head>
  <body style="margin:0;padding:40px 20px;background:#f9fafb;font-family:Arial, Helvetica, sans-serif;">
    <div style="max-width:480px;margin:0 auto;background:#ffffff;border-radius:8px;padding:32px;text-align:center;">
      <div style="font-size:40px;color:{colour};">{icon}</div>
      <h1 style="color:#111827;font-size:22px;">{escape(heading)}</h1>
      <p style="color:#374151;">{escape(message)}</p>
      <a href="{dashboard}" style="display:inline-block;margin-top:16px;padding:10px 20px;background:#3b82f6;color:#ffffff;text-decoration:none;border-radius:6px;">Go to Dashboard</a>
    </div>
  </body>
</html>
"""


def email_action(token):
    html_headers = {'Content-Type': 'text/html; charset=utf-8', 'Cache-Control': 'no-store'}
    try:
        row, title = redeem_action_token(token)
    except HubError as exc:
        current_app.logger.info("Email action rejected: %s", exc.message)
        return _page('Action Failed', 'Action Failed', exc.message, False), 200, html_headers

    message = f"{SUCCESS_MESSAGES[row.action]} ({title})"
    return _page('Action Complete', 'Action Complete', message, True), 200, html_headers
