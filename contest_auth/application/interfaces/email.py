"""
Email dispatch interface.

The authentication service only defines the call contract used to notify a
user about a verification or reset token. Delivery (queueing, templating,
provider APIs) belongs to the implementation behind this interface.
"""

from abc import ABC, abstractmethod

from contest_auth.domain.value_objects import EmailTemplate


class EmailDispatchError(Exception):
    """Raised by dispatchers when a message cannot be handed off."""


class EmailDispatcher(ABC):
    """Out-of-process email notification capability."""

    @abstractmethod
    async def send(self, recipient_email: str, template_kind: EmailTemplate, token: str) -> None:
        """
        Hand off a notification for delivery.

        Args:
            recipient_email: Address of the account owner
            template_kind: Which notification to send
            token: Raw single-use token to embed in the link

        Raises:
            EmailDispatchError: If the message could not be handed off
        """
        pass
