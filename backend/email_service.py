"""
Email колаборатор
=================
Ядро лише ВИКЛИКАЄ відправку запрошень; доставка листів - зовнішній сервіс.
За замовчуванням використовується LoggingEmailSender, який пише в лог.
"""

import logging
from typing import Optional, Protocol
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send_invitation(
        self,
        to: str,
        inviter_name: str,
        family_tree_name: str,
        claim_link: str,
        invitee_name: str = "",
    ) -> None:
        """Надіслати запрошення; помилка доставки - виняток"""


class LoggingEmailSender:
    """Відправник-заглушка: пише лист у лог (без сирого токена)"""

    def send_invitation(self, to, inviter_name, family_tree_name, claim_link, invitee_name=""):
        invitation_id = parse_qs(urlsplit(claim_link).query).get("id", ["?"])[0]
        logger.info(
            "📧 Invitation %s for %s <%s> from %s to join '%s'",
            invitation_id, invitee_name or "new member", to, inviter_name, family_tree_name,
        )


_sender: Optional[EmailSender] = None


def get_email_sender() -> EmailSender:
    global _sender
    if _sender is None:
        _sender = LoggingEmailSender()
    return _sender


def set_email_sender(sender: Optional[EmailSender]) -> None:
    global _sender
    _sender = sender
