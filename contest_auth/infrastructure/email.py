"""
Email dispatchers.

Delivery itself (provider APIs, templates, retries) lives outside this
service. These dispatchers build the link the user has to open and hand it
off: ``LoggingEmailDispatcher`` only logs the hand-off, and
``InMemoryEmailDispatcher`` also keeps every message for inspection.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from urllib.parse import urlencode

from contest_auth.application.interfaces.email import EmailDispatcher
from contest_auth.domain.value_objects import EmailTemplate

logger = logging.getLogger(__name__)

LINK_PATHS = {
    EmailTemplate.EMAIL_VERIFICATION: "/verify-email",
    EmailTemplate.PASSWORD_RESET: "/reset-password",
}


@dataclass(frozen=True)
class OutgoingEmail:
    recipient_email: str
    template_kind: EmailTemplate
    token: str
    link: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class LoggingEmailDispatcher(EmailDispatcher):
    """Dispatcher that records the hand-off in the service log."""

    def __init__(self, frontend_url: str) -> None:
        self.frontend_url = frontend_url.rstrip("/")

    def build_link(self, template_kind: EmailTemplate, token: str) -> str:
        return f"{self.frontend_url}{LINK_PATHS[template_kind]}?{urlencode({'token': token})}"

    async def send(self, recipient_email: str, template_kind: EmailTemplate, token: str) -> None:
        message = OutgoingEmail(
            recipient_email=recipient_email,
            template_kind=template_kind,
            token=token,
            link=self.build_link(template_kind, token),
        )
        self.deliver(message)

    def deliver(self, message: OutgoingEmail) -> None:
        # The link carries a live credential and is not logged
        logger.info(
            f"Queued {message.template_kind.value} email",
            extra={"template_kind": message.template_kind.value},
        )


class InMemoryEmailDispatcher(LoggingEmailDispatcher):
    """Keeps every dispatched message; for development and tests."""

    def __init__(self, frontend_url: str = "http://localhost:5173") -> None:
        super().__init__(frontend_url)
        self.outbox: list[OutgoingEmail] = []

    def deliver(self, message: OutgoingEmail) -> None:
        super().deliver(message)
        self.outbox.append(message)

    def last_token(self, recipient_email: str, template_kind: EmailTemplate) -> str | None:
        """Token of the most recent message of ``template_kind`` sent to ``recipient_email``."""
        for message in reversed(self.outbox):
            if (
                message.recipient_email == recipient_email
                and message.template_kind is template_kind
            ):
                return message.token
        return None
