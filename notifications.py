"""
Confirmation e-mails

Sending is best effort: callers get a SendResult back, delivery problems are
logged and never raised.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from html import escape
from typing import Optional

import aiosmtplib

import config
from schemas import utcnow

logger = logging.getLogger(__name__)


@dataclass
class EmailTemplate:
    subject: str
    html: str


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def _signature() -> str:
    return f"<p>Best regards,<br><strong>The {escape(config.BUSINESS_NAME)} Team</strong></p>"


def contact_email(name: str, subject: str, message: str) -> EmailTemplate:
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>Hi {escape(name)},</h2>"
        f"<p>Thank you for reaching out to {escape(config.BUSINESS_NAME)}! We've received your inquiry.</p>"
        "<h3>Your Message Details:</h3>"
        f"<p><strong>Subject:</strong> {escape(subject)}</p>"
        f"<p><strong>Message:</strong> {escape(message)}</p>"
        f"<p><strong>Submitted:</strong> {utcnow():%B %d, %Y}</p>"
        "<p>We'll get back to you within 24-48 hours.</p>"
        f"{_signature()}</div>"
    )
    return EmailTemplate(subject=f"Thank you for contacting {config.BUSINESS_NAME}!", html=html)


def booking_email(
    name: str,
    event_type: str,
    event_date: datetime,
    start_time: str,
    end_time: str,
    location: str,
    package: str,
    details: Optional[str] = None,
) -> EmailTemplate:
    html = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>Hi {escape(name)},</h2>"
        f"<p>Thank you for your booking request with {escape(config.BUSINESS_NAME)}!</p>"
        "<h3>Your Booking Details:</h3>"
        f"<p><strong>Event Type:</strong> {escape(event_type)}</p>"
        f"<p><strong>Date:</strong> {event_date:%B %d, %Y}</p>"
        f"<p><strong>Time:</strong> {escape(start_time)} - {escape(end_time)}</p>"
        f"<p><strong>Location:</strong> {escape(location)}</p>"
        f"<p><strong>Package:</strong> {escape(package)}</p>"
        f"<p><strong>Additional Notes:</strong> {escape(details or 'None')}</p>"
        "<p>We'll review your request and get back to you within 24-48 hours to confirm availability.</p>"
        f"{_signature()}</div>"
    )
    return EmailTemplate(subject=f"Booking Request Confirmation - {config.BUSINESS_NAME}", html=html)


async def send_confirmation_email(to: str, template: EmailTemplate) -> SendResult:
    if not config.EMAIL_HOST:
        logger.warning(f"Email to {to} not sent: EMAIL_HOST is not configured")
        return SendResult(success=False, error="Mail relay not configured")

    message = EmailMessage()
    message["From"] = formataddr((config.BUSINESS_NAME, config.EMAIL_USER or f"no-reply@{config.EMAIL_HOST}"))
    message["To"] = to
    message["Subject"] = template.subject
    message["Message-ID"] = make_msgid()
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(template.html, subtype="html")

    try:
        await aiosmtplib.send(
            message,
            hostname=config.EMAIL_HOST,
            port=config.EMAIL_PORT,
            username=config.EMAIL_USER,
            password=config.EMAIL_PASS,
            use_tls=config.EMAIL_SECURE,
        )
    except Exception as e:
        logger.error(f"Email sending failed: {e}")
        return SendResult(success=False, error=str(e))

    logger.info(f"Email sent successfully: {message['Message-ID']}")
    return SendResult(success=True, message_id=message["Message-ID"])
