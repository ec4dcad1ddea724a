"""Outstanding membership invitations for a single town."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable

from .errors import AlreadyInvitedError, MalformedDocumentError, NoSuchInvitationError
from .models import PlayerId


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Invitation:
    invitee: PlayerId
    town: str
    issued_at: datetime
    status: InvitationStatus = InvitationStatus.PENDING

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.issued_at >= ttl

    def to_document(self) -> dict[str, Any]:
        return {
            "invitee": self.invitee.value,
            "town": self.town,
            "issuedAt": self.issued_at.isoformat(),
        }

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Invitation:
        try:
            issued_at = datetime.fromisoformat(document["issuedAt"])
            if issued_at.tzinfo is None:
                issued_at = issued_at.replace(tzinfo=timezone.utc)
            return cls(invitee=PlayerId(document["invitee"]), town=str(document["town"]), issued_at=issued_at)
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedDocumentError(f"invalid invitation document: {exc}") from exc


class InvitationList:
    """Insertion-ordered invitations, at most one per invitee."""

    def __init__(self, invitations: Iterable[Invitation] = ()) -> None:
        self._invitations: dict[PlayerId, Invitation] = {}
        for invitation in invitations:
            self.add(invitation)

    def __len__(self) -> int:
        return len(self._invitations)

    def __contains__(self, invitee: object) -> bool:
        return invitee in self._invitations

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InvitationList):
            return NotImplemented
        return self.all() == other.all()

    def get(self, invitee: PlayerId) -> Invitation | None:
        return self._invitations.get(invitee)

    def add(self, invitation: Invitation) -> None:
        if invitation.invitee in self._invitations:
            raise AlreadyInvitedError(f"{invitation.invitee} already has an invitation to {invitation.town}")
        self._invitations[invitation.invitee] = invitation

    def invite(self, town: str, invitee: PlayerId, issued_at: datetime | None = None) -> Invitation:
        invitation = Invitation(invitee=invitee, town=town, issued_at=issued_at or _utc_now())
        self.add(invitation)
        return invitation

    def resolve(self, invitee: PlayerId, outcome: InvitationStatus) -> Invitation:
        """Remove the invitation for ``invitee`` and return it stamped with ``outcome``.

        Resolution never changes membership; accepting callers add the member
        themselves.
        """
        if outcome is InvitationStatus.PENDING:
            raise ValueError("an invitation cannot be resolved as pending")
        invitation = self._invitations.pop(invitee, None)
        if invitation is None:
            raise NoSuchInvitationError(f"no invitation for {invitee}")
        return replace(invitation, status=outcome)

    def remove(self, invitee: PlayerId) -> bool:
        return self._invitations.pop(invitee, None) is not None

    def all(self) -> list[Invitation]:
        return list(self._invitations.values())

    def expired(self, now: datetime, ttl: timedelta) -> list[Invitation]:
        return [invitation for invitation in self._invitations.values() if invitation.is_expired(now, ttl)]

    def to_document(self) -> dict[str, Any]:
        return {"invitations": [invitation.to_document() for invitation in self._invitations.values()]}

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> InvitationList:
        entries = document.get("invitations", [])
        if not isinstance(entries, list):
            raise MalformedDocumentError("invitations must be a list")
        try:
            return cls(Invitation.from_document(entry) for entry in entries)
        except AlreadyInvitedError as exc:
            raise MalformedDocumentError(str(exc)) from exc
