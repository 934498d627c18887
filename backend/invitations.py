"""
Запрошення до дерева
====================
Після створення/оновлення особи з новим email:
1. створюємо запис Invitation (хеш токена, термін дії)
2. надсилаємо лист через email колаборатор

Обидва кроки - "fire-and-forget": особа вже збережена, тому будь-яка
помилка тут логується і НЕ піднімається далі.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from config import Settings, get_settings
from document_store import INVITATIONS, utcnow
from email_service import EmailSender
from person_store import PersonStore
from utils.tokens import generate_secure_token, hash_token

logger = logging.getLogger(__name__)


def build_claim_link(frontend_url: str, token: str, invitation_id: str) -> str:
    return f"{frontend_url}/signup/invited?token={token}&id={invitation_id}"


def send_member_invitation(
    store: PersonStore,
    email_sender: EmailSender,
    *,
    invitee_id: str,
    invitee_email: str,
    invitee_name: str,
    inviter_id: str,
    inviter_name: str,
    family_tree_id: str,
    family_tree_name: str,
    relationship: str,
    prefill: Optional[Dict[str, Any]] = None,
    settings: Optional[Settings] = None,
) -> Optional[str]:
    """
    Створити запрошення та надіслати лист.

    Returns:
        id запрошення або None, якщо щось пішло не так (вже залоговано)
    """
    settings = settings or get_settings()
    prefill = prefill or {}
    try:
        token = generate_secure_token()
        invitation_id = store.new_id("invitation")
        now = utcnow()

        batch = store.batch()
        batch.set(INVITATIONS, invitation_id, {
            "inviteeId": invitee_id,
            "inviteeEmail": invitee_email,
            "inviteeName": invitee_name,
            "inviterId": inviter_id,
            "inviterName": inviter_name,
            "familyTreeId": family_tree_id,
            "token": hash_token(token),
            "expires": now + timedelta(days=settings.invitation_ttl_days),
            "status": "pending",
            "createdAt": now,
            "relationship": relationship,
            "prefillFirstName": prefill.get("firstName"),
            "prefillLastName": prefill.get("lastName"),
            "prefillGender": prefill.get("gender"),
            "prefillPhoneNumber": prefill.get("phoneNumber"),
        })
        store.commit(batch, "createInvitation")

        email_sender.send_invitation(
            to=invitee_email,
            inviter_name=inviter_name,
            family_tree_name=family_tree_name,
            claim_link=build_claim_link(settings.frontend_url, token, invitation_id),
            invitee_name=invitee_name,
        )
        logger.info("Sent invitation email to %s for family tree %s", invitee_email, family_tree_id)
        return invitation_id
    except Exception:
        # Особа вже збережена - лист не критичний
        logger.exception("Error sending invitation email to %s", invitee_email)
        return None


def get_pending_invitations(store: PersonStore, family_tree_id: str) -> List[Dict[str, Any]]:
    """Очікуючі запрошення дерева, новіші першими (без хешу токена)"""
    pending = [i for i in store.get_invitations(family_tree_id) if i.get("status") == "pending"]
    pending.sort(key=lambda i: i.get("createdAt") or utcnow(), reverse=True)
    return [
        {
            "id": invitation["id"],
            "email": invitation.get("inviteeEmail") or "",
            "inviteeName": invitation.get("inviteeName") or "",
            "firstName": invitation.get("prefillFirstName") or "",
            "lastName": invitation.get("prefillLastName") or "",
            "invitedBy": invitation.get("inviterId") or "",
            "invitedByName": invitation.get("inviterName") or "",
            "invitedAt": invitation.get("createdAt"),
            "expiresAt": invitation.get("expires"),
            "status": invitation.get("status"),
        }
        for invitation in pending
    ]
