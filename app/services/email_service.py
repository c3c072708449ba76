from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from fastapi import Request
from html import escape
import smtplib
import logging

from app.core.config import Settings
from app.models.contact import ContactInDB, format_contact_date

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30

BASE_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: linear-gradient(135deg, #2563eb 0%, #8b5cf6 100%); color: white; padding: 20px; border-radius: 8px 8px 0 0; }
    .content { background: #f9fafb; padding: 20px; border-radius: 0 0 8px 8px; }
    .field { margin-bottom: 15px; }
    .label { font-weight: bold; color: #1f2937; }
    .value { color: #4b5563; }
    .footer { text-align: center; margin-top: 20px; font-size: 12px; color: #6b7280; }
"""


def _field(label: str, value: str) -> str:
    return f"""
            <div class="field">
              <div class="label">{label}:</div>
              <div class="value">{value}</div>
            </div>"""


def render_contact_notification(contact: ContactInDB, company_name: str) -> str:
    """HTML body of the internal 'new submission' email."""
    email = escape(contact.email)
    fields = [
        _field("Contact Person", escape(contact.name)),
        _field("School Name", escape(contact.school)),
        _field("Email", f'<a href="mailto:{email}">{email}</a>'),
    ]
    if contact.phone:
        fields.append(_field("Phone", escape(contact.phone)))
    fields.append(_field("Message", escape(contact.message)))
    fields.append(_field("Submitted", format_contact_date(contact.created_at)))
    fields.append(_field("Submission ID", escape(contact.id)))

    return f"""<!DOCTYPE html>
<html>
  <head><style>{BASE_STYLE}</style></head>
  <body>
    <div class="container">
      <div class="header"><h2>🎓 New Contact Form Submission</h2></div>
      <div class="content">{''.join(fields)}
      </div>
      <div class="footer"><p>{escape(company_name)} - Contact Management System</p></div>
    </div>
  </body>
</html>"""


def render_auto_reply(contact: ContactInDB, company_name: str) -> str:
    """HTML body of the acknowledgement sent back to the submitter."""
    company = escape(company_name)
    return f"""<!DOCTYPE html>
<html>
  <head><style>{BASE_STYLE}</style></head>
  <body>
    <div class="container">
      <div class="header"><h1>🚀 {company}</h1><p>Technology Education Partner for Schools</p></div>
      <div class="content">
        <p>Dear {escape(contact.name)},</p>
        <p>Thank you for your interest in {company}! We've received your inquiry regarding <strong>{escape(contact.school)}</strong>.</p>
        <p>Our team will review your message and get back to you within 24-48 hours.</p>
        <p><strong>What happens next?</strong></p>
        <ul>
          <li>Our education consultant will contact you within 2 business days</li>
          <li>We'll schedule a visit to your school at your convenience</li>
          <li>You'll receive a customized proposal tailored to your needs</li>
        </ul>
        <p>Best regards,<br><strong>The {company} Team</strong></p>
      </div>
      <div class="footer"><p>{company} - Building Tomorrow's Innovators Today</p></div>
    </div>
  </body>
</html>"""


class EmailService:
    """
    Sends the two contact emails over SMTP.

    Both senders are plain functions so FastAPI runs them in its threadpool
    after the response has gone out. They never raise: every failure is
    logged and dropped.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def is_configured(self) -> bool:
        if not self.settings.email_configured:
            logger.warning("Email configuration missing. Email notifications will be disabled.")
            return False
        return True

    def send_contact_notification(self, contact: ContactInDB) -> bool:
        subject = f"New Contact Form Submission - {contact.school}"
        body = render_contact_notification(contact, self.settings.COMPANY_NAME)
        return self._send(self.settings.ADMIN_EMAIL, subject, body, kind="notification")

    def send_auto_reply(self, contact: ContactInDB) -> bool:
        subject = f"Thank you for contacting {self.settings.COMPANY_NAME}"
        body = render_auto_reply(contact, self.settings.COMPANY_NAME)
        return self._send(contact.email, subject, body, kind="auto-reply")

    def _send(self, recipient: str, subject: str, html_body: str, kind: str) -> bool:
        if not self.is_configured():
            logger.info(f"Email {kind} skipped - no configuration")
            return False

        try:
            msg = MIMEMultipart("alternative")
            msg["From"] = self.settings.EMAIL_FROM or self.settings.EMAIL_USERNAME
            msg["To"] = recipient
            msg["Subject"] = subject
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            logger.info(f"Attempting to send {kind} email via {self.settings.EMAIL_HOST}:{self.settings.EMAIL_PORT}")
            with smtplib.SMTP(self.settings.EMAIL_HOST, self.settings.EMAIL_PORT, timeout=SMTP_TIMEOUT_SECONDS) as server:
                if self.settings.EMAIL_USE_TLS:
                    server.starttls()
                server.login(self.settings.EMAIL_USERNAME, self.settings.EMAIL_PASSWORD)
                server.send_message(msg)

            logger.info(f"✅ Email {kind} sent to {recipient}")
            return True

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"❌ SMTP Authentication failed: {str(e)}")
            logger.error("Please check your EMAIL_USERNAME and EMAIL_PASSWORD")
        except smtplib.SMTPException as e:
            logger.error(f"❌ SMTP error occurred while sending {kind}: {str(e)}")
        except Exception as e:
            logger.error(f"❌ Failed to send {kind} email: {str(e)}", exc_info=True)
        return False


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service
