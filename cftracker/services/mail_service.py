import logging

from flask import current_app
from flask_mail import Message

from cftracker.extensions import mail

logger = logging.getLogger(__name__)

REMINDER_SUBJECT = 'Keep Going with Codeforces!'


def mail_configured() -> bool:
    config = current_app.config
    return bool(config.get('MAIL_SERVER') and config.get('MAIL_DEFAULT_SENDER'))


def send_inactivity_email(email: str, name: str) -> None:
    """Send the weekly-inactivity reminder. Raises if delivery fails."""
    msg = Message(
        subject=REMINDER_SUBJECT,
        recipients=[email],
        sender=current_app.config.get('MAIL_DEFAULT_SENDER') or None,
        body=(
            f"Hi {name},\n\n"
            f"We noticed you haven't solved any problems on Codeforces in the "
            f"past week. Keep practicing to improve your skills!\n\n"
            f"Best,\nYour Progress Tracker"
        ),
    )
    mail.send(msg)
    logger.info(f"Inactivity email sent to {email}")
