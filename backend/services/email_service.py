from postmarker.core import PostmarkClient
from pymongo.errors import PyMongoError
from models import MessageLog, EmailTemplateAlias
from utils.email import is_valid_email
from utils.public_app_url import get_public_app_url, ACCESS_PAGE_PATH
from datetime import datetime, timezone
from html import escape
from urllib.parse import quote
import asyncio
import os
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

# Email sender configuration
# Verified sender in Postmark
DEFAULT_SENDER = "noreply@finapp.hu"
ACCESS_EMAIL_SUBJECT = "Hozzáférése aktiválva - Finapp"


def generate_access_link(email: str) -> str:
    """Link to the access page for an email, built on the public base URL."""
    if not email or not isinstance(email, str):
        raise ValueError("Email is required to generate access link")
    return f"{get_public_app_url()}{ACCESS_PAGE_PATH}?email={quote(email, safe='')}"


def format_valid_until(valid_until: Optional[datetime]) -> str:
    """Hungarian date format (2026. 10. 19.), or '1 évig' when unknown."""
    if not isinstance(valid_until, datetime):
        return "1 évig"
    return f"{valid_until.year}. {valid_until.month:02d}. {valid_until.day:02d}."


class EmailService:
    def __init__(self, db=None, server_token: Optional[str] = None, sender: Optional[str] = None):
        self.db = db
        self.sender = sender or os.getenv("EMAIL_SENDER", DEFAULT_SENDER)
        postmark_token = server_token if server_token is not None else os.getenv("POSTMARK_SERVER_TOKEN")
        if not postmark_token:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
            self.client = None
        else:
            self.client = PostmarkClient(server_token=postmark_token)
            logger.info("Postmark email client initialized")

    async def send_email(
        self,
        recipient: str,
        template_alias: EmailTemplateAlias,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> MessageLog:
        """Send one email through Postmark. Failures are recorded on the returned log, never raised."""
        message_log = MessageLog(
            recipient=recipient,
            template_alias=template_alias,
            subject=subject,
            status="queued"
        )

        if not is_valid_email(recipient):
            message_log.status = "failed"
            message_log.error_message = "Invalid recipient address"
            logger.error(f"Invalid email address: {recipient}")
        else:
            try:
                if self.client:
                    # postmarker is synchronous; keep the event loop free
                    response = await asyncio.to_thread(
                        self.client.emails.send,
                        From=self.sender,
                        To=recipient,
                        Subject=subject,
                        HtmlBody=html_body,
                        TextBody=text_body,
                        Tag=template_alias.value,
                    )
                    message_log.postmark_message_id = response["MessageID"]
                    message_log.status = "sent"
                    message_log.sent_at = datetime.now(timezone.utc)
                    logger.info(f"Email sent to {recipient}: {response['MessageID']}")
                else:
                    # Dev mode - just log
                    message_log.status = "sent"
                    message_log.sent_at = datetime.now(timezone.utc)
                    logger.info(f"[DEV MODE] Email logged (not sent) to {recipient}")
            except Exception as e:
                message_log.status = "failed"
                message_log.error_message = str(e)
                logger.error(f"Failed to send email to {recipient}: {e}")

        await self._store_log(message_log)
        return message_log

    async def _store_log(self, message_log: MessageLog) -> None:
        if self.db is None:
            return
        try:
            await self.db.message_logs.insert_one(message_log.model_dump())
        except PyMongoError as e:
            logger.warning(f"Failed to store message log {message_log.message_id}: {e}")

    async def send_access_email(self, recipient: str, valid_until: Optional[datetime]) -> bool:
        """Notify a buyer that access is active. Returns True when the email went out."""
        model = {
            "access_link": generate_access_link(recipient),
            "valid_until": format_valid_until(valid_until),
        }
        message_log = await self.send_email(
            recipient=recipient,
            template_alias=EmailTemplateAlias.ACCESS_GRANTED,
            subject=ACCESS_EMAIL_SUBJECT,
            html_body=self._build_html_body(EmailTemplateAlias.ACCESS_GRANTED, model),
            text_body=self._build_text_body(EmailTemplateAlias.ACCESS_GRANTED, model),
        )
        return message_log.status == "sent"

    def _build_email_footer(self) -> str:
        return """
                <hr style="border: none; border-top: 1px solid #dee2e6; margin: 24px 0;">
                <p style="font-size: 13px; line-height: 1.6; color: #6c757d; margin: 0 0 12px 0;">
                    <strong style="color: #495057;">Email tájékoztatás:</strong> Negyedévente egyszer automatikus emailt küldünk,
                    amely az aktuális gazdasági változásokat összefoglalja. Nem küldünk marketing emailt.
                </p>
                <p style="font-size: 12px; color: #6c757d; margin: 0;">Ez egy automatikus üzenet, erre az emailre nem kell válaszolni.</p>
        """

    def _build_html_body(self, template_alias: EmailTemplateAlias, model: Dict[str, Any]) -> str:
        """Build HTML email body. Interpolated values are HTML-escaped."""
        if template_alias == EmailTemplateAlias.ACCESS_GRANTED:
            link = escape(model.get("access_link", "#"), quote=True)
            valid_until = escape(model.get("valid_until", ""), quote=True)
            return f"""
            <html>
            <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2>Hozzáférés aktiválva</h2>
                <p>Hozzáférése aktiválva lett a Finapp számítási eszközeihez.</p>
                <p>Hozzáférési link:</p>
                <p><a href="{link}" style="display: inline-block; padding: 12px 24px; background-color: #ffffff; color: #212529; text-decoration: none; border: 1px solid #dee2e6; border-radius: 4px;">Hozzáférések</a></p>
                <p>Vagy másolja be ezt a linket a böngészőjébe:</p>
                <p style="word-break: break-all;">{link}</p>
                <p>Hozzáférése {valid_until}-ig érvényes.</p>
                {self._build_email_footer()}
            </body>
            </html>
            """
        raise ValueError(f"Unknown email template: {template_alias}")

    def _build_text_body(self, template_alias: EmailTemplateAlias, model: Dict[str, Any]) -> str:
        if template_alias == EmailTemplateAlias.ACCESS_GRANTED:
            return (
                "Köszönjük a vásárlást!\n\n"
                "Hozzáférése sikeresen aktiválva lett a Finapp számítási eszközeihez.\n\n"
                f"Hozzáférési linkje: {model.get('access_link', '')}\n\n"
                f"Hozzáférése {model.get('valid_until', '')}-ig érvényes.\n\n"
                "---\n\n"
                "Email tájékoztatás: Negyedévente egyszer automatikus emailt küldünk, amely az aktuális "
                "gazdasági változásokat összefoglalja. Nem küldünk marketing emailt.\n"
            )
        raise ValueError(f"Unknown email template: {template_alias}")
