import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from yatrasathi.config import settings
from yatrasathi.logger import logger


def send_email(to_email: Optional[str], subject: str, body: str) -> bool:
    """Send a plain-text mail through the configured SMTP relay.

    Without SMTP credentials the message is only logged, which is what local
    and test environments rely on. Returns True when the relay accepted it.
    """
    if not to_email:
        logger.warning("email '{}' skipped: no recipient", subject)
        return False

    if not settings.smtp_host or not settings.smtp_username:
        logger.info("email to {} not sent (SMTP not configured): {}", to_email, subject)
        return False

    msg = MIMEMultipart()
    msg["From"] = settings.mail_from
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain"))

    try:
        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port)
        server.starttls()
        server.login(settings.smtp_username, settings.smtp_password)
        server.sendmail(settings.mail_from, to_email, msg.as_string())
        server.quit()
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("email to {} failed: {}", to_email, exc)
        return False

    logger.info("email sent to {}: {}", to_email, subject)
    return True


def notify_booking_status(email: Optional[str], booking_no: str, status: str) -> bool:
    subject = f"{settings.company_name}: booking {booking_no} is {status}"
    body = (
        f"Dear customer,\n\nYour booking {booking_no} is now {status}.\n\n"
        f"Regards,\n{settings.company_name}"
    )
    return send_email(email, subject, body)


def notify_bill_generated(email: Optional[str], bill_no: str, amount: str) -> bool:
    subject = f"{settings.company_name}: bill {bill_no}"
    body = (
        f"Dear customer,\n\nBill {bill_no} for {amount} has been generated for your booking.\n\n"
        f"Regards,\n{settings.company_name}"
    )
    return send_email(email, subject, body)
