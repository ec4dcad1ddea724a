import threading
from datetime import datetime, timedelta, timezone

import pytest

from townhall.backend.errors import (
    AlreadyInvitedError,
    AlreadyMemberError,
    CapacityExceededError,
    InsufficientRoleError,
    InvalidRoleError,
    NoSuchInvitationError,
    NotAMemberError,
)
from townhall.backend.host import LocalHostContext
from townhall.backend.invitation import InvitationStatus
from townhall.backend.models import PlayerId, Position, Region, Role
from townhall.backend.town import CapacityCheck, Town, TownRules


def _town(host: LocalHostContext | None = None, **kwargs) -> Town:
    region = Region(start=Position("world", 0, 0, 0), end=Position("world", 100, 255, 100))
    return Town(
        host=host or LocalHostContext(),
        name="Riverdale",
        region=region,
        spawn=Position("world", 50, 64, 50),
        leader=PlayerId("Mayor"),
        **kwargs,
    )


def test_add_member_to_empty_town_succeeds() -> None:
    town = _town()

    town.add_member(PlayerId("Alice"))

    assert town.capacity == 10
    assert town.members == {PlayerId("alice"): Role.VILLAGER}


def test_add_member_rejects_eleventh_member_and_keeps_roster() -> None:
    town = _town()
    for index in range(10):
        town.add_member(PlayerId(f"villager{index}"))

    with pytest.raises(CapacityExceededError):
        town.add_member(PlayerId("bob"))

    assert len(town.members) == 10
    assert not town.is_member(PlayerId("bob"))
    assert town.can_accept_new_member() is False


def test_roster_never_exceeds_capacity() -> None:
    town = _town(capacity=3)
    for index in range(8):
        try:
            town.add_member(PlayerId(f"p{index}"))
        except CapacityExceededError:
            pass
        assert len(town.members) <= town.capacity

    assert len(town.members) == 3


def test_legacy_capacity_check_refuses_joins_below_capacity() -> None:
    town = _town(rules=TownRules(capacity_check=CapacityCheck.LEGACY))

    with pytest.raises(CapacityExceededError):
        town.add_member(PlayerId("alice"))

    assert CapacityCheck.LEGACY.is_full(size=11, capacity=10) is False
    assert CapacityCheck.FILL.is_full(size=10, capacity=10) is True


def test_add_member_rejects_existing_members_and_leader() -> None:
    town = _town()
    town.add_member(PlayerId("alice"))

    with pytest.raises(AlreadyMemberError):
        town.add_member(PlayerId("ALICE"))
    with pytest.raises(AlreadyMemberError):
        town.add_member(PlayerId("mayor"))


def test_invalid_role_leaves_roster_unchanged() -> None:
    town = _town()
    town.add_member(PlayerId("alice"))

    with pytest.raises(InvalidRoleError):
        town.add_member(PlayerId("bob"), "Mayor")
    with pytest.raises(InvalidRoleError):
        town.set_role(PlayerId("alice"), "Sheriff")

    assert town.members == {PlayerId("alice"): Role.VILLAGER}


def test_is_member_counts_leader_but_role_of_does_not() -> None:
    town = _town()

    assert town.is_member(PlayerId("MAYOR"))
    assert town.villagers() == []
    with pytest.raises(NotAMemberError):
        town.role_of(PlayerId("mayor"))


def test_set_role_inserts_unconditionally_except_for_leader() -> None:
    town = _town()

    town.set_role(PlayerId("stranger"), Role.CO_LEADER)

    assert town.role_of(PlayerId("stranger")) is Role.CO_LEADER
    with pytest.raises(AlreadyMemberError):
        town.set_role(PlayerId("mayor"), Role.VILLAGER)


def test_promote_and_demote_require_membership() -> None:
    town = _town()
    town.add_member(PlayerId("alice"))

    town.promote(PlayerId("alice"))
    assert town.role_of(PlayerId("alice")) is Role.CO_LEADER

    town.demote(PlayerId("alice"))
    assert town.role_of(PlayerId("alice")) is Role.VILLAGER

    with pytest.raises(NotAMemberError):
        town.promote(PlayerId("stranger"))
    assert not town.is_member(PlayerId("stranger"))


def test_role_name_uses_host_translations() -> None:
    host = LocalHostContext(translations={"towny.role.Co-Leader": "Deputy", "towny.role.Leader": "Chief"})
    town = _town(host=host)
    town.add_member(PlayerId("alice"), Role.CO_LEADER)

    assert town.role_name(PlayerId("alice")) == "Deputy"
    assert town.role_name(PlayerId("mayor")) == "Chief"


def test_forced_removal_broadcasts_once_to_remaining_online_members() -> None:
    host = LocalHostContext()
    town = _town(host=host)
    town.add_member(PlayerId("alice"))
    town.add_member(PlayerId("bob"))
    town.add_member(PlayerId("offline"))
    alice = host.connect("Alice")
    bob = host.connect("Bob")
    mayor = host.connect("Mayor")

    assert town.remove_member(PlayerId("alice"), force=True) is True
    assert town.remove_member(PlayerId("alice"), force=True) is False

    assert len(host.broadcasts) == 1
    message, recipients = host.broadcasts[0]
    assert recipients == frozenset({"Bob", "Mayor"})
    assert message == "§b§l[ Riverdale§b§l] §r§7alice has been removed from the town."
    assert bob.inbox == [message]
    assert mayor.inbox == [message]
    assert alice.inbox == []


def test_unforced_removal_is_silent_and_leader_cannot_be_removed() -> None:
    host = LocalHostContext()
    town = _town(host=host)
    town.add_member(PlayerId("alice"))
    host.connect("Mayor")

    assert town.remove_member(PlayerId("alice")) is True
    assert town.remove_member(PlayerId("mayor"), force=True) is False

    assert host.broadcasts == []
    assert town.is_member(PlayerId("mayor"))


def test_online_members_skips_offline_players() -> None:
    host = LocalHostContext()
    town = _town(host=host)
    town.add_member(PlayerId("alice"))
    town.add_member(PlayerId("bob"))
    alice = host.connect("alice")

    assert town.online_members() == {alice}


def test_broadcast_renders_sender_before_message() -> None:
    host = LocalHostContext()
    town = _town(host=host)
    mayor = host.connect("Mayor")

    town.broadcast("meeting at noon", from_player=PlayerId("Mayor"))
    town.broadcast("tax day")

    assert mayor.inbox == [
        "§b§l[ Riverdale§b§l] §r§7mayor > meeting at noon",
        "§b§l[ Riverdale§b§l] §r§7tax day",
    ]


def test_increase_capacity_adds_step_and_respects_ceiling() -> None:
    town = _town(rules=TownRules(max_capacity=20))

    assert town.increase_capacity() == 20
    with pytest.raises(CapacityExceededError):
        town.increase_capacity()
    assert town.capacity == 20


def test_increase_capacity_is_unbounded_by_default() -> None:
    town = _town()
    for _ in range(5):
        town.increase_capacity()

    assert town.capacity == 60


def test_withdraw_rejects_overdraft_and_allows_exact_balance() -> None:
    town = _town(treasury=50)

    assert town.withdraw(60) is False
    assert town.balance() == 50
    assert town.withdraw(50) is True
    assert town.balance() == 0


def test_deposit_then_withdraw_restores_balance() -> None:
    town = _town(treasury=17)

    town.deposit(25)
    assert town.withdraw(25) is True

    assert town.balance() == 17


def test_negative_amounts_are_rejected() -> None:
    town = _town(treasury=5)

    with pytest.raises(ValueError):
        town.deposit(-1)
    with pytest.raises(ValueError):
        town.withdraw(-1)
    assert town.balance() == 5


def test_constructor_rejects_inconsistent_state() -> None:
    with pytest.raises(ValueError):
        _town(treasury=-1)
    with pytest.raises(ValueError):
        _town(members={PlayerId("mayor"): Role.VILLAGER})


def test_accepted_invitation_is_consumed_before_membership_is_added() -> None:
    town = _town()
    town.invite(PlayerId("mayor"), PlayerId("carol"))

    resolved = town.resolve_invitation(PlayerId("carol"), InvitationStatus.ACCEPTED)

    assert resolved.status is InvitationStatus.ACCEPTED
    assert town.all_invitations() == []
    assert not town.is_member(PlayerId("carol"))

    town.add_member(PlayerId("carol"))
    assert town.role_of(PlayerId("carol")) is Role.VILLAGER


def test_accept_invitation_adds_villager() -> None:
    town = _town()
    town.invite(PlayerId("mayor"), PlayerId("Carol"))

    invitation = town.accept_invitation(PlayerId("carol"))

    assert invitation.status is InvitationStatus.ACCEPTED
    assert town.members == {PlayerId("carol"): Role.VILLAGER}
    assert town.all_invitations() == []


def test_accept_invitation_reissues_invitation_when_town_is_full() -> None:
    town = _town(capacity=1)
    town.add_member(PlayerId("alice"), Role.CO_LEADER)
    original = town.invite(PlayerId("alice"), PlayerId("carol"))

    with pytest.raises(CapacityExceededError):
        town.accept_invitation(PlayerId("carol"))

    assert town.all_invitations() == [original]
    assert not town.is_member(PlayerId("carol"))


def test_invite_requires_leader_or_co_leader() -> None:
    town = _town()
    town.add_member(PlayerId("villager"))

    with pytest.raises(InsufficientRoleError):
        town.invite(PlayerId("villager"), PlayerId("carol"))
    with pytest.raises(NotAMemberError):
        town.invite(PlayerId("outsider"), PlayerId("carol"))
    with pytest.raises(AlreadyMemberError):
        town.invite(PlayerId("mayor"), PlayerId("villager"))
    assert town.all_invitations() == []


def test_invite_twice_without_resolution_fails() -> None:
    town = _town()
    town.invite(PlayerId("mayor"), PlayerId("carol"))

    with pytest.raises(AlreadyInvitedError):
        town.invite(PlayerId("mayor"), PlayerId("CAROL"))

    town.decline_invitation(PlayerId("carol"))
    town.invite(PlayerId("mayor"), PlayerId("carol"))
    assert len(town.all_invitations()) == 1


def test_decline_unknown_invitation_fails() -> None:
    town = _town()

    with pytest.raises(NoSuchInvitationError):
        town.decline_invitation(PlayerId("carol"))


def test_expire_invitations_resolves_stale_entries_only() -> None:
    town = _town(rules=TownRules(invitation_ttl=timedelta(minutes=5)))
    town.invite(PlayerId("mayor"), PlayerId("carol"))
    now = datetime.now(timezone.utc)

    assert town.expire_invitations(now) == []

    expired = town.expire_invitations(now + timedelta(minutes=6))

    assert [invitation.invitee for invitation in expired] == [PlayerId("carol")]
    assert expired[0].status is InvitationStatus.EXPIRED
    assert town.all_invitations() == []
    assert not town.is_member(PlayerId("carol"))


def test_expire_invitations_accepts_naive_utc_time() -> None:
    town = _town(rules=TownRules(invitation_ttl=timedelta(minutes=5)))
    town.invite(PlayerId("mayor"), PlayerId("carol"))
    naive_later = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(minutes=6)

    expired = town.expire_invitations(naive_later)

    assert [invitation.invitee for invitation in expired] == [PlayerId("carol")]


def _run_concurrently(worker, count: int) -> None:
    barrier = threading.Barrier(count)

    def _target(index: int) -> None:
        barrier.wait()
        worker(index)

    threads = [threading.Thread(target=_target, args=(index,)) for index in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


def test_concurrent_joins_never_overfill_town() -> None:
    town = _town(capacity=10)
    joined: list[int] = []
    refused: list[int] = []

    def _join(index: int) -> None:
        try:
            town.add_member(PlayerId(f"player{index}"))
            joined.append(index)
        except CapacityExceededError:
            refused.append(index)

    _run_concurrently(_join, 50)

    assert len(town.members) == 10
    assert len(joined) == 10
    assert len(refused) == 40


def test_concurrent_withdrawals_never_overdraw_treasury() -> None:
    town = _town(treasury=100)
    results: list[bool] = []

    _run_concurrently(lambda index: results.append(town.withdraw(7)), 50)

    assert results.count(True) == 14
    assert town.balance() == 100 - 14 * 7
    assert town.balance() >= 0
