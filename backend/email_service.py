"""Reminder email rendering and delivery (Postmark HTTP API, SMTP fallback)."""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests
from flask import current_app
from markupsafe import escape

from backend.errors import DeliveryError

POSTMARK_URL = 'https://api.postmarkapp.com/email'


def email_transport():
    """'postmark', 'smtp', or None when nothing is configured."""
    config = current_app.config
    if config.get('POSTMARK_API_KEY'):
        return 'postmark'
    if config.get('SMTP_HOST'):
        return 'smtp'
    return None


def _post_to_postmark(to_addr, subject, html_body, text_body):
    config = current_app.config
    try:
        response = requests.post(
            POSTMARK_URL,
            headers={
                'Accept': 'application/json',
                'Content-Type': 'application/json',
                'X-Postmark-Server-Token': config['POSTMARK_API_KEY'],
            },
            json={
                'From': config.get('EMAIL_FROM'),
                'To': to_addr,
                'Subject': subject,
                'HtmlBody': html_body,
                'TextBody': text_body,
            },
            timeout=config.get('EMAIL_TIMEOUT_SECONDS', 10),
        )
    except requests.RequestException as exc:
        raise DeliveryError(f'Postmark request failed: {exc}') from exc
    if not response.ok:
        raise DeliveryError('Postmark rejected the message', status=response.status_code, body=response.text)


def _send_smtp(to_addr, subject, html_body, text_body):
    config = current_app.config
    host = config.get('SMTP_HOST')
    port = int(config.get('SMTP_PORT') or 587)
    user = config.get('SMTP_USER')
    password = config.get('SMTP_PASSWORD')
    from_addr = config.get('SMTP_FROM') or config.get('EMAIL_FROM') or user

    msg = MIMEMultipart('alternative')
    msg['Subject'] = subject
    msg['From'] = from_addr
    msg['To'] = to_addr
    msg.attach(MIMEText(text_body, 'plain'))
    msg.attach(MIMEText(html_body, 'html'))

    try:
        with smtplib.SMTP(host, port, timeout=config.get('EMAIL_TIMEOUT_SECONDS', 10)) as server:
            server.starttls()
            if user and password:
                server.login(user, password)
            server.sendmail(from_addr, [to_addr], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        raise DeliveryError(f'SMTP send failed: {exc}') from exc


def send_email(to, subject, html_body, text_body):
    """Single delivery attempt. Returns True on confirmed success, False otherwise."""
    transport = email_transport()
    if transport is None:
        current_app.logger.warning("No email transport configured; email to %s not sent", to)
        return False
    try:
        if transport == 'postmark':
            _post_to_postmark(to, subject, html_body, text_body)
        else:
            _send_smtp(to, subject, html_body, text_body)
    except DeliveryError as exc:
        current_app.logger.error(
            "Email send failed via %s: %s (status=%s body=%s)", transport, exc.message, exc.status, exc.body
        )
        return False
    return True


def _format_due(next_due):
    return next_due.strftime('%A, %B %d, %Y').replace(' 0', ' ')


def reminder_subject(title, is_due_today):
    return f"\U0001F514 Reminder: {title}{' (Due Today!)' if is_due_today else ''}"


def render_reminder_email_html(reminder, action_urls, is_due_today):
    """
    reminder: dict with title, description, next_due (date), doc_title, doc_url.
    User-controlled text is escaped; URLs are inserted as-is so hrefs stay valid.
    """
    title = escape(reminder['title'])
    description = escape(reminder.get('description') or '')
    doc_title = escape(reminder.get('doc_title') or '')
    due_label = _format_due(reminder['next_due']) + (' (Today!)' if is_due_today else '')
    dashboard = action_urls['dashboard']

    doc_link = ''
    if reminder.get('doc_title') and reminder.get('doc_url'):
        doc_link = (
            f'<p style="margin:16px 0;"><a href="{dashboard}{reminder["doc_url"]}" '
            f'style="color:#3b82f6;">\U0001F4C4 {doc_title}</a></p>'
        )
    description_block = f'<p style="color:#374151;margin:0 0 16px 0;">{description}</p>' if description else ''
    snooze_button = '' if is_due_today else (
        f'<a href="{action_urls["snooze"]}" style="display:inline-block;padding:12px 24px;margin-right:8px;'
        f'background-color:#f59e0b;color:white;text-decoration:none;border-radius:6px;">Snooze Until Due</a>'
    )

    return f"""
<!doctype html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
  </head>
  <body style="margin:0;padding:0;background:#f9fafb;font-family:Arial, Helvetica, sans-serif;">
    <div style="max-width:600px;margin:0 auto;padding:20px;">
      <div style="background:#ffffff;border-radius:8px;padding:32px;">
        <h1 style="color:#111827;margin:0 0 8px 0;font-size:24px;">\U0001F514 Reminder: {title}</h1>
        <p style="color:#6b7280;margin:0 0 24px 0;font-size:14px;">Due: {due_label}</p>
        {description_block}
        {doc_link}
        <div style="margin-top:24px;padding-top:24px;border-top:1px solid #e5e7eb;">
          {snooze_button}
          <a href="{action_urls['ignore']}" style="display:inline-block;padding:12px 24px;background-color:#6b7280;color:white;text-decoration:none;border-radius:6px;">Ignore This Occurrence</a>
        </div>
        <p style="color:#9ca3af;font-size:12px;margin-top:24px;">
          <a href="{dashboard}" style="color:#6b7280;">View all reminders in Dashboard</a>
        </p>
      </div>
    </div>
  </body>
</html>
"""


def render_reminder_email_text(reminder, action_urls, is_due_today):
    lines = [
        f"Reminder: {reminder['title']}",
        f"Due: {_format_due(reminder['next_due'])}{' (Today!)' if is_due_today else ''}",
        '',
    ]
    if reminder.get('description'):
        lines.extend([reminder['description'], ''])
    if reminder.get('doc_title') and reminder.get('doc_url'):
        lines.extend([
            f"Related Document: {reminder['doc_title']}",
            f"{action_urls['dashboard']}{reminder['doc_url']}",
            '',
        ])
    lines.extend(['---', ''])
    if not is_due_today:
        lines.append(f"Snooze Until Due: {action_urls['snooze']}")
    lines.append(f"Ignore This Occurrence: {action_urls['ignore']}")
    lines.extend(['', f"View all reminders: {action_urls['dashboard']}"])
    return '\n'.join(lines)
