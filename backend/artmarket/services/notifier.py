"""
Outgoing notifications (email over SMTP).

send() never raises on delivery problems: it logs and returns False so each
caller decides whether a failed notification matters. Password reset treats
it as fatal; welcome and order confirmation mails are best-effort.
"""

import enum
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict

from jinja2 import Template

from artmarket.core.config import settings

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    WELCOME = "welcome"
    PASSWORD_RESET = "password_reset"
    ORDER_CONFIRMATION = "order_confirmation"


# (subject, body) templates per notification kind
TEMPLATES: Dict[NotificationKind, tuple[str, str]] = {
    NotificationKind.WELCOME: (
        "Welcome to {{ site_name }}, {{ name }}!",
        "Hi {{ name }},\n\n"
        "Welcome to {{ site_name }}. You can now browse, collect and sell artworks.\n",
    ),
    NotificationKind.PASSWORD_RESET: (
        "Your password reset token (valid for {{ expires_minutes }} minutes)",
        "Hi {{ name }},\n\n"
        "Forgot your password? Submit a new password at:\n{{ reset_url }}\n\n"
        "If you didn't request this, please ignore this email.\n",
    ),
    NotificationKind.ORDER_CONFIRMATION: (
        "Order #{{ order_id }} confirmed",
        "Hi {{ name }},\n\n"
        "Thank you for your purchase. Your payment has been received.\n\n"
        "{% for item in items %}- {{ item.title }}: {{ item.price }} {{ currency | upper }}\n{% endfor %}"
        "\nTotal: {{ total_amount }} {{ currency | upper }}\n",
    ),
}


class SmtpNotifier:
    """Renders notification templates and delivers them over SMTP"""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool,
        from_name: str,
        from_address: str,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_name = from_name
        self.from_address = from_address

    @staticmethod
    def render(kind: NotificationKind, data: Dict[str, Any]) -> tuple[str, str]:
        subject_template, body_template = TEMPLATES[kind]
        context = {"site_name": settings.EMAIL_FROM_NAME, **data}
        return Template(subject_template).render(**context), Template(body_template).render(**context)

    def send(self, recipient: str, kind: NotificationKind, data: Dict[str, Any]) -> bool:
        """Send one notification; returns True on successful delivery"""
        subject, body = self.render(kind, data)

        if not self.host:
            logger.warning(f"SMTP not configured; {kind.value} notification to {recipient} not sent")
            return False

        message = MIMEMultipart()
        message["Subject"] = subject
        message["From"] = f"{self.from_name} <{self.from_address}>"
        message["To"] = recipient
        message.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send {kind.value} notification to {recipient}: {str(e)}")
            return False

        logger.info(f"Sent {kind.value} notification to {recipient}")
        return True


notifier = SmtpNotifier(
    host=settings.SMTP_HOST,
    port=settings.SMTP_PORT,
    username=settings.SMTP_USERNAME,
    password=settings.SMTP_PASSWORD,
    use_tls=settings.SMTP_USE_TLS,
    from_name=settings.EMAIL_FROM_NAME,
    from_address=settings.EMAIL_FROM_ADDRESS,
)
