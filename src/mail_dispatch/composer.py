"""Build one outbound message per recipient group."""

import logging
from typing import Dict, List, Sequence

from .models import (
    GROUP_KEY_PLACEHOLDER,
    NOTES_PLACEHOLDER,
    ORGANIZATION_PLACEHOLDER,
    MessageTemplate,
    OutboundMessage,
    RecipientRecord,
    RecipientRole,
    TransportConfig,
)
from .validators import validate_email_address

logger = logging.getLogger(__name__)

DEFAULT_SENDER_EMAIL = "noreply@example.com"
DEFAULT_SENDER_NAME = "Bulk Mail Sender"


def placeholder_values(group_key: str, members: Sequence[RecipientRecord]) -> Dict[str, str]:
    """Values for each placeholder, taken from the first member of the group.

    Absent fields keep their literal placeholder.
    """
    first = members[0] if members else None
    organization = first.organization_name if first else None
    notes = first.notes if first else None
    return {
        ORGANIZATION_PLACEHOLDER: organization if organization and organization.strip() else ORGANIZATION_PLACEHOLDER,
        NOTES_PLACEHOLDER: notes if notes and notes.strip() else NOTES_PLACEHOLDER,
        GROUP_KEY_PLACEHOLDER: group_key,
    }


def substitute_placeholders(text: str, values: Dict[str, str]) -> str:
    """Replace every occurrence of each placeholder in ``text``."""
    result = text or ""
    for placeholder, value in values.items():
        result = result.replace(placeholder, value)
    return result


def _merge_always_cc(cc: List[str], always_cc: Sequence[str]) -> List[str]:
    merged = list(cc)
    present = {address.casefold() for address in merged}
    for address in always_cc:
        address = address.strip()
        if not address:
            continue
        is_valid, detail = validate_email_address(address)
        if not is_valid:
            logger.warning("Invalid always-cc address '%s': %s", address, detail)
            continue
        if address.casefold() in present:
            logger.debug("Always-cc address %s already copied", address)
            continue
        merged.append(address)
        present.add(address.casefold())
    return merged


def compose_message(
    template: MessageTemplate,
    group_key: str,
    members: Sequence[RecipientRecord],
    attachments: Sequence[str],
    transport: TransportConfig,
) -> OutboundMessage:
    """Compose the message for one group.

    Args:
        template: Subject and body patterns
        group_key: Key of the group being sent
        members: Group members in input order
        attachments: Resolved attachment paths
        transport: Transport settings supplying sender and always-cc addresses

    Returns:
        OutboundMessage with recipients partitioned by role
    """
    values = placeholder_values(group_key, members)

    unique_attachments: List[str] = []
    for path in attachments:
        if path not in unique_attachments:
            unique_attachments.append(path)

    cc = [m.email for m in members if m.role == RecipientRole.OBSERVER]

    return OutboundMessage(
        sender_email=transport.from_email or transport.username or DEFAULT_SENDER_EMAIL,
        sender_name=transport.from_name or DEFAULT_SENDER_NAME,
        subject=substitute_placeholders(template.subject, values),
        body=substitute_placeholders(template.body, values),
        to=[m.email for m in members if m.role == RecipientRole.PRIMARY],
        cc=_merge_always_cc(cc, transport.always_cc),
        bcc=[m.email for m in members if m.role == RecipientRole.SILENT],
        attachments=unique_attachments,
    )
