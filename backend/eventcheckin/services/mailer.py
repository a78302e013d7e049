import html
import logging
import smtplib
import ssl
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from eventcheckin.core.config import settings
from eventcheckin.models.attendee import Attendee
from eventcheckin.services.activity import log_activity
from eventcheckin.services.qr_code import render_qr_png

logger = logging.getLogger(__name__)

# (filename, content, MIME subtype under image/)
Attachment = Tuple[str, bytes, str]

class EmailService:
    def __init__(self):
        self.smtp_server = settings.SMTP_SERVER
        self.smtp_port = settings.SMTP_PORT
        self.username = settings.SMTP_USERNAME
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.timeout = settings.EMAIL_TIMEOUT

    def build_message(
        self,
        to_emails: List[str],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> MIMEMultipart:
        message = MIMEMultipart("mixed")
        message["Subject"] = subject
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = ", ".join(to_emails)

        body = MIMEMultipart("alternative")
        if text_content:
            body.attach(MIMEText(text_content, "plain"))
        body.attach(MIMEText(html_content, "html"))
        message.attach(body)

        for filename, content, subtype in attachments or []:
            part = MIMEBase("image", subtype)
            part.set_payload(content)
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", f'attachment; filename="{filename}"')
            message.attach(part)

        return message

    def send_email(
        self,
        to_emails: List[str],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> bool:
        """Send an email over SMTP with STARTTLS. Returns False on failure."""
        message = self.build_message(to_emails, subject, html_content, text_content, attachments)

        if not settings.SEND_EMAILS:
            logger.info(f"Email sending disabled. Would send: {subject} to {to_emails}")
            return True

        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                server.starttls(context=context)
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.from_email, to_emails, message.as_string())

            logger.info(f"Email sent successfully to {to_emails}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_emails}: {e}", exc_info=True)
            return False

email_service = EmailService()

DEFAULT_QR_TEMPLATE = {
    "subject": "Your Event QR Code - {attendeeName}",
    "header_title": "Your Event QR Code",
    "greeting": "Hello {attendeeName},",
    "main_message": "You are registered for the event. Show the attached QR code at the entrance to check in.",
    "qr_instructions": "If the code cannot be scanned, staff can enter it manually:",
    "closing_message": "Each guest you bring is checked in by scanning the same code again.",
}

def render_qr_template(attendee: Attendee, template: Optional[Dict[str, Optional[str]]] = None, custom_message: Optional[str] = None) -> Dict[str, str]:
    """Merge overrides into the default QR email wording and fill in ``{attendeeName}``"""
    fields = dict(DEFAULT_QR_TEMPLATE)
    for key, value in (template or {}).items():
        if key in fields and value and value.strip():
            fields[key] = value.strip()
    if custom_message and custom_message.strip():
        fields["main_message"] = custom_message.strip()

    return {key: value.replace("{attendeeName}", attendee.name) for key, value in fields.items()}

def qr_email_content(attendee: Attendee, template: Optional[Dict[str, Optional[str]]] = None, custom_message: Optional[str] = None) -> Tuple[str, str, str]:
    """Subject, HTML body and plain-text body of the QR code email"""
    fields = render_qr_template(attendee, template, custom_message)
    subject = fields["subject"]
    safe = {key: html.escape(value) for key, value in fields.items()}
    token = html.escape(attendee.qr_token)

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <title>{safe["header_title"]}</title>
        <style>
            body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5; }}
            .container {{ max-width: 600px; margin: 0 auto; background-color: white; padding: 30px; border-radius: 10px; }}
            .code {{ font-family: monospace; font-size: 28px; letter-spacing: 4px; text-align: center; margin: 20px 0; }}
            .footer {{ text-align: center; margin-top: 30px; color: #6b7280; font-size: 14px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>{safe["header_title"]}</h1>
            <h2>{safe["greeting"]}</h2>
            <p>{safe["main_message"]}</p>
            <p>{safe["qr_instructions"]}</p>
            <div class="code">{token}</div>
            <p>{safe["closing_message"]}</p>
            <div class="footer">
                <p>This is an automated message from {html.escape(settings.FROM_NAME)}</p>
            </div>
        </div>
    </body>
    </html>
    """

    text_content = (
        f"{fields['greeting']}\n\n"
        f"{fields['main_message']}\n"
        f"Manual code: {attendee.qr_token}\n\n"
        f"{fields['closing_message']}\n"
    )
    return subject, html_content, text_content

def send_qr_email(
    db: Session,
    attendee: Attendee,
    sent_by: Optional[str] = None,
    service: Optional[EmailService] = None,
    template: Optional[Dict[str, Optional[str]]] = None,
    custom_message: Optional[str] = None,
) -> bool:
    """Email an attendee their QR code as a PNG attachment and record the outcome"""
    service = service or email_service
    subject, html_content, text_content = qr_email_content(attendee, template, custom_message)
    png = render_qr_png(attendee.qr_token)

    sent = service.send_email(
        [attendee.email],
        subject,
        html_content,
        text_content,
        attachments=[(f"qr-{attendee.qr_token}.png", png, "png")],
    )

    log_activity(
        db,
        type="email_sent",
        action="send_qr_email",
        status="success" if sent else "error",
        user_name=attendee.name,
        user_email=attendee.email,
        details=subject if sent else f"Failed to send: {subject}",
        metadata={"qr_token": attendee.qr_token, "sent_by": sent_by},
    )
    return sent

def send_staff_invitation_email(invitation, signup_link: str, service: Optional[EmailService] = None) -> bool:
    """Tell an invited staff member where to create their account"""
    service = service or email_service
    subject = f"You're invited to join {settings.PROJECT_NAME}"
    role = invitation.role.value.replace("_", " ")
    link = html.escape(signup_link, quote=True)

    html_content = f"""
    <html>
    <body style="font-family: Arial, sans-serif;">
        <h2>You're invited</h2>
        <p>{html.escape(invitation.invited_by or "An administrator")} invited you to join the event check-in team as <b>{role}</b>.</p>
        <p><a href="{link}">Create your account</a></p>
        <p>This invitation expires in {settings.STAFF_INVITATION_EXPIRE_DAYS} days.</p>
    </body>
    </html>
    """
    text_content = f"You have been invited as {role}. Create your account: {signup_link}\n"
    return service.send_email([invitation.email], subject, html_content, text_content)
