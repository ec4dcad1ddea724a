"""Town aggregate: membership roster, roles, treasury and invitations."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum

from .errors import (
    AlreadyMemberError,
    CapacityExceededError,
    InsufficientRoleError,
    NotAMemberError,
    TownError,
)
from .host import HostContext
from .invitation import Invitation, InvitationList, InvitationStatus
from .logging_config import get_logger
from .models import PlayerId, Position, Region, Role, Session, TownOption

logger = get_logger(__name__)

DEFAULT_CAPACITY = 10
CAPACITY_STEP = 10
DEFAULT_INVITATION_TTL = timedelta(minutes=5)
TOWN_PREFIX = "§b§l[ {name}§b§l] §r§7"
FORCE_QUIT_MESSAGE = "towny.message.forceQuit"
ROLE_MESSAGE = "towny.role.{role}"


class CapacityCheck(str, Enum):
    """How a roster size is compared against the capacity when adding members.

    FILL lets the roster grow until it reaches the capacity. LEGACY keeps the
    historical comparison, which refuses new members while the roster is at
    or below the capacity.
    """

    FILL = "fill"
    LEGACY = "legacy"

    def is_full(self, size: int, capacity: int) -> bool:
        if self is CapacityCheck.LEGACY:
            return capacity >= size
        return size >= capacity


@dataclass(frozen=True)
class TownRules:
    default_capacity: int = DEFAULT_CAPACITY
    capacity_step: int = CAPACITY_STEP
    max_capacity: int | None = None
    capacity_check: CapacityCheck = CapacityCheck.FILL
    invitation_ttl: timedelta = DEFAULT_INVITATION_TTL


class Town:
    """A named territory with a leader, a capped roster and a treasury.

    Every public operation runs under the town's own lock, so one town can be
    shared between threads without serializing unrelated towns.
    """

    def __init__(
        self,
        host: HostContext,
        name: str,
        region: Region,
        spawn: Position,
        leader: PlayerId,
        members: dict[PlayerId, Role] | None = None,
        option: TownOption | None = None,
        capacity: int | None = None,
        invitations: InvitationList | None = None,
        treasury: int = 0,
        rules: TownRules | None = None,
    ) -> None:
        self._rules = rules or TownRules()
        members = dict(members or {})
        capacity = self._rules.default_capacity if capacity is None else capacity
        if name == "":
            raise ValueError("town name must not be empty")
        if leader in members:
            raise ValueError(f"leader {leader} must not be listed as a member")
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        if treasury < 0:
            raise ValueError("treasury must not be negative")

        self.host = host
        self._name = name
        self._region = region
        self._spawn = spawn
        self._leader = leader
        self._members = {player: Role.parse(role) for player, role in members.items()}
        self._option = option or TownOption()
        self._capacity = capacity
        self._invitations = invitations if invitations is not None else InvitationList()
        self._treasury = treasury
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"Town(name={self._name!r}, leader={self._leader.value!r}, members={len(self._members)})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def region(self) -> Region:
        return self._region

    @property
    def spawn(self) -> Position:
        return self._spawn

    @property
    def leader(self) -> PlayerId:
        return self._leader

    @property
    def option(self) -> TownOption:
        return self._option

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def rules(self) -> TownRules:
        return self._rules

    @property
    def invitations(self) -> InvitationList:
        return self._invitations

    @property
    def members(self) -> dict[PlayerId, Role]:
        with self._lock:
            return dict(self._members)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def prefix(self) -> str:
        return TOWN_PREFIX.format(name=self._name)

    def villagers(self) -> list[PlayerId]:
        with self._lock:
            return list(self._members)

    # Membership

    def is_member(self, player: PlayerId) -> bool:
        with self._lock:
            return player == self._leader or player in self._members

    def role_of(self, player: PlayerId) -> Role:
        """Return the stored role; the leader has no stored role."""
        with self._lock:
            try:
                return self._members[player]
            except KeyError:
                raise NotAMemberError(f"{player} is not a member of {self._name}") from None

    def role_name(self, player: PlayerId) -> str:
        role = Role.LEADER if player == self._leader else self.role_of(player)
        return self.host.translate(ROLE_MESSAGE.format(role=role.value))

    def add_member(self, player: PlayerId, role: Role | str = Role.VILLAGER) -> None:
        role = Role.parse(role)
        with self._lock:
            if self.is_member(player):
                raise AlreadyMemberError(f"{player} is already a member of {self._name}")
            if self._rules.capacity_check.is_full(len(self._members), self._capacity):
                raise CapacityExceededError(f"{self._name} is full ({self._capacity} members)")
            self._members[player] = role
        logger.info("Member added", town=self._name, player=player.value, role=role.value)

    def remove_member(self, player: PlayerId, force: bool = False) -> bool:
        """Remove ``player`` from the roster; the leader cannot be removed."""
        with self._lock:
            if player == self._leader:
                logger.warning("Refusing to remove town leader", town=self._name, player=player.value)
                return False
            if player not in self._members:
                return False
            del self._members[player]
            logger.info("Member removed", town=self._name, player=player.value, forced=force)
            if force:
                self.broadcast(self.host.translate(FORCE_QUIT_MESSAGE, player.value))
            return True

    def set_role(self, player: PlayerId, role: Role | str) -> None:
        """Write ``role`` for ``player`` whether or not they are already in the roster."""
        role = Role.parse(role)
        with self._lock:
            if player == self._leader:
                raise AlreadyMemberError(f"{player} leads {self._name}; the leader role is implicit")
            self._members[player] = role
        logger.info("Role set", town=self._name, player=player.value, role=role.value)

    def promote(self, player: PlayerId) -> None:
        with self._lock:
            self.role_of(player)
            self._members[player] = Role.CO_LEADER
        logger.info("Member promoted", town=self._name, player=player.value)

    def demote(self, player: PlayerId) -> None:
        with self._lock:
            self.role_of(player)
            self._members[player] = Role.VILLAGER
        logger.info("Member demoted", town=self._name, player=player.value)

    def can_accept_new_member(self) -> bool:
        with self._lock:
            return self._capacity > len(self._members)

    def increase_capacity(self) -> int:
        with self._lock:
            next_capacity = self._capacity + self._rules.capacity_step
            if self._rules.max_capacity is not None and next_capacity > self._rules.max_capacity:
                raise CapacityExceededError(f"{self._name} cannot grow past {self._rules.max_capacity} members")
            self._capacity = next_capacity
        logger.info("Capacity increased", town=self._name, capacity=next_capacity)
        return next_capacity

    def online_members(self) -> set[Session]:
        with self._lock:
            players = [self._leader, *self._members]
        online: set[Session] = set()
        for player in players:
            session = self.host.session_for(player)
            if session is not None:
                online.add(session)
        return online

    def broadcast(self, message: str, from_player: PlayerId | None = None) -> None:
        sender = f"{from_player} > " if from_player is not None else ""
        self.host.broadcast(f"{self.prefix}{sender}{message}", self.online_members())

    # Treasury

    def balance(self) -> int:
        with self._lock:
            return self._treasury

    def deposit(self, amount: int) -> None:
        if amount < 0:
            raise ValueError("deposit amount must not be negative")
        with self._lock:
            self._treasury += amount
        logger.info("Treasury deposit", town=self._name, amount=amount)

    def withdraw(self, amount: int) -> bool:
        if amount < 0:
            raise ValueError("withdraw amount must not be negative")
        with self._lock:
            if self._treasury - amount < 0:
                return False
            self._treasury -= amount
        logger.info("Treasury withdrawal", town=self._name, amount=amount)
        return True

    # Invitations

    def all_invitations(self) -> list[Invitation]:
        with self._lock:
            return self._invitations.all()

    def invite(self, inviter: PlayerId, invitee: PlayerId) -> Invitation:
        with self._lock:
            if inviter != self._leader:
                if self.role_of(inviter) not in (Role.LEADER, Role.CO_LEADER):
                    raise InsufficientRoleError(f"{inviter} may not invite players to {self._name}")
            if self.is_member(invitee):
                raise AlreadyMemberError(f"{invitee} is already a member of {self._name}")
            invitation = self._invitations.invite(self._name, invitee)
        logger.info("Invitation issued", town=self._name, inviter=inviter.value, invitee=invitee.value)
        return invitation

    def resolve_invitation(self, invitee: PlayerId, outcome: InvitationStatus) -> Invitation:
        with self._lock:
            invitation = self._invitations.resolve(invitee, outcome)
        logger.info("Invitation resolved", town=self._name, invitee=invitee.value, outcome=outcome.value)
        return invitation

    def accept_invitation(self, invitee: PlayerId) -> Invitation:
        """Consume the invitation and add the invitee as a Villager.

        If the invitee cannot be added the invitation is put back unchanged
        and the error is raised to the caller.
        """
        with self._lock:
            invitation = self.resolve_invitation(invitee, InvitationStatus.ACCEPTED)
            try:
                self.add_member(invitee, Role.VILLAGER)
            except TownError as exc:
                self._invitations.add(replace(invitation, status=InvitationStatus.PENDING))
                logger.warning(
                    "Invitation reissued after failed join",
                    town=self._name,
                    invitee=invitee.value,
                    reason=type(exc).__name__,
                )
                raise
            return invitation

    def decline_invitation(self, invitee: PlayerId) -> Invitation:
        return self.resolve_invitation(invitee, InvitationStatus.DECLINED)

    def expire_invitations(self, now: datetime | None = None) -> list[Invitation]:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        with self._lock:
            stale = self._invitations.expired(now, self._rules.invitation_ttl)
            return [self.resolve_invitation(invitation.invitee, InvitationStatus.EXPIRED) for invitation in stale]
