import enum
import logging
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)


class MessageKind(str, enum.Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    WELCOME = "welcome"


SUBJECTS = {
    MessageKind.EMAIL_VERIFICATION: "Verify your TempLink account",
    MessageKind.PASSWORD_RESET: "Reset your TempLink password",
    MessageKind.WELCOME: "Welcome to TempLink!",
}


class Notifier(Protocol):
    async def deliver(self, address: str, kind: MessageKind, payload: Dict[str, Any]) -> bool:
        """Returns False when the message could not be handed off."""
        ...


def render_text(kind: MessageKind, payload: Dict[str, Any]) -> str:
    name = payload.get("name") or "there"
    if kind is MessageKind.EMAIL_VERIFICATION:
        return (
            f"Hi {name},\n\nPlease verify your email by clicking this link: {payload['url']}\n\n"
            "This link expires in 24 hours."
        )
    if kind is MessageKind.PASSWORD_RESET:
        return (
            f"Hi {name},\n\nReset your password by clicking this link: {payload['url']}\n\n"
            "This link expires in 1 hour.\n\nIf you didn't request this, ignore this email."
        )
    return f"Hi {name},\n\nYour email is verified. Start creating links at {payload.get('url', '')}"


class LoggingNotifier:
    """Development notifier: renders the message and logs it instead of sending."""

    def __init__(self, sender: str):
        self.sender = sender

    async def deliver(self, address: str, kind: MessageKind, payload: Dict[str, Any]) -> bool:
        logger.info(
            "Email preview",
            extra={
                "email_from": self.sender,
                "email_to": address,
                "email_subject": SUBJECTS[kind],
                "email_body": render_text(kind, payload),
            },
        )
        return True
