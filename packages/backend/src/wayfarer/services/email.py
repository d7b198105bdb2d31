"""Email hand-off for password resets.

Learn: Delivery itself (SMTP, SES, templates) lives outside the identity
core. The auth flows only need "send this reset link to this address",
so the collaborator is a one-method interface. The default dispatcher
just logs the hand-off; a real deployment swaps in its own through the
`get_email_dispatcher` dependency.
"""

from abc import ABC, abstractmethod

import structlog

from wayfarer.config import settings

logger = structlog.get_logger()


class EmailDispatcher(ABC):
    """Delivers password-reset links."""

    @abstractmethod
    async def send_password_reset(self, email: str, reset_link: str) -> None:
        """Send the reset link. Raises if delivery could not be handed off."""


class LoggingEmailDispatcher(EmailDispatcher):
    """Logs the hand-off instead of sending anything (development)."""

    async def send_password_reset(self, email: str, reset_link: str) -> None:
        # The link carries the raw token; only log it where nobody else reads the logs.
        logger.info(
            "email.password_reset_queued",
            to=email,
            link=reset_link if settings.debug else None,
        )


def build_reset_link(token: str) -> str:
    return settings.password_reset_url.format(token=token)


_dispatcher: EmailDispatcher = LoggingEmailDispatcher()


def get_email_dispatcher() -> EmailDispatcher:
    """FastAPI dependency — the process-wide dispatcher."""
    return _dispatcher
