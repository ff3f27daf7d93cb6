"""
邮件通知渠道 - SMTP 发送纯文本邮件
"""
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Optional

from concierge_core.notification import INotificationChannel

logger = logging.getLogger(__name__)


class EmailChannel(INotificationChannel):
    """SMTP 邮件通知渠道，enabled=False 时只记录日志不发送"""

    def __init__(
        self,
        smtp_host: str = "localhost",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        sender_email: str = "",
        use_tls: bool = True,
        enabled: bool = True,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.sender_email = sender_email or smtp_user
        self.use_tls = use_tls
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings) -> "EmailChannel":
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            sender_email=settings.SMTP_SENDER,
            use_tls=settings.SMTP_USE_TLS,
            enabled=settings.EMAIL_ENABLED,
        )

    def send(
        self,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> bool:
        """发送邮件

        Args:
            recipient: 收件人邮箱地址
            subject: 邮件标题
            content: 邮件正文（纯文本）
            extra: 可选参数 (cc)
        """
        if not recipient:
            logger.warning(f"Email '{subject}' skipped: no recipient")
            return False
        if not self.enabled:
            logger.info(f"Email disabled, not sending to {recipient}: {subject}")
            return False

        try:
            extra = extra or {}
            msg = MIMEMultipart()
            msg["From"] = self.sender_email
            msg["To"] = recipient
            msg["Subject"] = subject
            if cc := extra.get("cc"):
                msg["Cc"] = cc
            msg.attach(MIMEText(content, "plain", "utf-8"))

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                if self.use_tls:
                    server.starttls()
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)

            logger.info(f"Email sent to {recipient}: {subject}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {recipient}: {e}")
            return False

    def get_channel_type(self) -> str:
        return "email"
