"""
Outgoing mail for the academy portal.

The Mailer is a single constructed resource (see extensions.py) bound to the
application in create_app(). Delivery is best-effort: failures are logged and
never surfaced to the operation that queued the message.
"""

import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from jinja2 import Template

from academy.utils.helpers import render_markdown

logger = logging.getLogger('mailer')


EMAIL_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="en"><head><meta charset="UTF-8"><meta name="viewport" content="width=device-width,initial-scale=1.0"></head>
<body style="margin:0;padding:0;background-color:#f4f5f7;">
<table role="presentation" style="width:100%;border-collapse:collapse;border:0;">
<tr><td align="center" style="padding:20px;">
<table role="presentation" style="max-width:602px;width:100%;border:1px solid #cccccc;background:#ffffff;border-radius:8px;">
<tr><td style="padding:36px 30px 42px 30px;font-family:Arial,sans-serif;color:#555555;">
<h1 style="font-size:24px;margin:0 0 20px 0;color:#333333;">{{ subject }}</h1>
<p style="margin:0 0 12px 0;font-size:16px;">Dear {{ name }},</p>
<div style="font-size:16px;line-height:24px;">{{ body }}</div>
<p style="margin:30px 0 0 0;font-size:16px;">Sincerely,<br>The {{ academy_name }} Team</p>
</td></tr>
<tr><td style="padding:30px;background:#333333;color:#ffffff;font-family:Arial,sans-serif;font-size:14px;">
&copy; {{ year }} {{ academy_name }}
</td></tr>
</table>
</td></tr>
</table>
</body></html>
""", autoescape=True)


def build_email_html(name, subject, message, academy_name='Academy Portal'):
    """Render the branded HTML mail body; ``message`` is treated as Markdown."""
    return EMAIL_TEMPLATE.render(
        name=name,
        subject=subject,
        body=render_markdown(message),
        academy_name=academy_name,
        year=datetime.now().year,
    )


class Mailer:
    """SMTP mail transport with fire-and-forget dispatch."""

    def __init__(self, app=None, scheduler=None):
        self.host = None
        self.port = 587
        self.username = None
        self.password = None
        self.from_address = None
        self.academy_name = 'Academy Portal'
        self.timeout = 15
        self.scheduler = scheduler
        if app is not None:
            self.init_app(app, scheduler=scheduler)

    def init_app(self, app, scheduler=None):
        self.host = app.config.get('SMTP_HOST')
        self.port = int(app.config.get('SMTP_PORT') or 587)
        self.username = app.config.get('SMTP_USER')
        self.password = app.config.get('SMTP_PASS')
        self.from_address = app.config.get('SMTP_FROM_EMAIL') or self.username
        self.academy_name = app.config.get('ACADEMY_NAME', self.academy_name)
        if scheduler is not None:
            self.scheduler = scheduler
        app.extensions['mailer'] = self

        if not self.is_configured:
            app.logger.info("SMTP is not configured; outgoing mail will be logged and skipped.")

    @property
    def is_configured(self):
        return bool(self.host and self.username and self.password)

    def render(self, name, subject, message):
        return build_email_html(name, subject, message, academy_name=self.academy_name)

    def send(self, to_address, subject, html_body):
        """
        Deliver one message synchronously.

        Raises smtplib/OS errors to the caller; use dispatch() for best-effort
        delivery.
        """
        if not self.is_configured:
            logger.warning(f"Mail to {to_address} not sent: transport is not configured (subject: {subject})")
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = self.from_address
        msg['To'] = to_address
        msg.attach(MIMEText(html_body, 'html'))

        if self.port == 465:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as server:
                server.login(self.username, self.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.username, self.password)
                server.send_message(msg)
        logger.info(f"Mail sent to {to_address}: {subject}")
        return True

    def _deliver(self, to_address, subject, html_body):
        try:
            return self.send(to_address, subject, html_body)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending mail to {to_address}: {e}", exc_info=True)
            return False

    def dispatch(self, to_address, subject, html_body):
        """
        Queue a message without waiting for delivery.

        Runs on the background scheduler when it is running; otherwise the
        message is delivered inline and any failure is only logged.
        """
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.add_job(
                func=self._deliver,
                args=[to_address, subject, html_body],
                name=f'mail:{to_address}',
                misfire_grace_time=None,
            )
            return None
        return self._deliver(to_address, subject, html_body)
