"""Group recipient records by group key."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .models import RecipientRecord, RecipientRole


@dataclass(frozen=True)
class RecipientGroup:
    """Recipients sharing one group key, in input order."""

    key: str
    members: Tuple[RecipientRecord, ...]

    def with_role(self, role: RecipientRole) -> List[str]:
        return [m.email for m in self.members if m.role == role]

    @property
    def primary_addresses(self) -> List[str]:
        return self.with_role(RecipientRole.PRIMARY)


def group_recipients(records: Iterable[RecipientRecord]) -> List[RecipientGroup]:
    """Group records by key.

    Keys match case-insensitively and keep the first spelling seen. Groups
    are ordered by key; members keep their relative input order.
    """
    display: Dict[str, str] = {}
    members: Dict[str, List[RecipientRecord]] = {}

    for record in records:
        folded = record.group_key.strip().casefold()
        if folded not in members:
            display[folded] = record.group_key.strip()
            members[folded] = []
        members[folded].append(record)

    ordered = sorted(members, key=lambda folded: (display[folded], folded))
    return [RecipientGroup(key=display[f], members=tuple(members[f])) for f in ordered]
