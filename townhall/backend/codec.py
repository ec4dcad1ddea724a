"""Town snapshot documents and the serialize/deserialize pair."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, StrictBool, StrictInt, StrictStr, ValidationError

from .errors import InvalidRoleError, MalformedDocumentError, UnresolvedHostContextError
from .host import HostContext
from .invitation import InvitationList
from .models import PlayerId, Position, Region, Role, TownOption
from .town import Town, TownRules

INVITATION_LIST_KEY = "invitationList"
LEGACY_INVITATION_LIST_KEY = "InvitationList"


class OptionDocument(BaseModel):
    pvp: StrictBool = False
    fireSpread: StrictBool = False
    mobSpawning: StrictBool = True
    publicSpawn: StrictBool = False


class InvitationDocument(BaseModel):
    invitee: StrictStr = Field(min_length=1)
    town: StrictStr
    issuedAt: StrictStr


class InvitationListDocument(BaseModel):
    invitations: list[InvitationDocument] = Field(default_factory=list)


class TownDocument(BaseModel):
    name: StrictStr = Field(min_length=1)
    villagers: StrictStr
    leader: StrictStr = Field(min_length=1)
    maxVillagers: StrictInt = Field(ge=0)
    option: OptionDocument
    start: StrictStr
    end: StrictStr
    spawn: StrictStr
    invitationList: InvitationListDocument | None = None
    townyMoney: StrictInt = Field(ge=0)


def serialize(town: Town) -> dict[str, Any]:
    """Capture a full snapshot of ``town`` as a JSON-compatible document."""
    with town.lock:
        document: dict[str, Any] = {
            "name": town.name,
            "villagers": json.dumps({player.value: role.value for player, role in town.members.items()}),
            "leader": town.leader.value,
            "maxVillagers": town.capacity,
            "option": town.option.to_document(),
            "start": town.region.start.to_hash(),
            "end": town.region.end.to_hash(),
            "spawn": town.spawn.to_hash(),
        }
        if len(town.invitations) > 0:
            document[INVITATION_LIST_KEY] = town.invitations.to_document()
        document["townyMoney"] = town.balance()
    return document


def deserialize(document: dict[str, Any], host: HostContext | None, rules: TownRules | None = None) -> Town:
    """Rebuild a town from ``document`` attached to ``host``."""
    if host is None or not isinstance(host, HostContext):
        raise UnresolvedHostContextError("a host context is required to load a town")
    if not isinstance(document, dict):
        raise MalformedDocumentError("town document must be a mapping")

    payload = dict(document)
    if INVITATION_LIST_KEY not in payload and LEGACY_INVITATION_LIST_KEY in payload:
        payload[INVITATION_LIST_KEY] = payload.pop(LEGACY_INVITATION_LIST_KEY)

    try:
        parsed = TownDocument.model_validate(payload)
    except ValidationError as exc:
        name = document.get("name", "<unknown>")
        raise MalformedDocumentError(f"town document {name!r} is invalid: {exc}") from exc

    try:
        members = _parse_villagers(parsed.villagers)
        start = Position.from_hash(parsed.start)
        end = Position.from_hash(parsed.end)
        spawn = Position.from_hash(parsed.spawn)
        invitations = (
            InvitationList.from_document(parsed.invitationList.model_dump())
            if parsed.invitationList is not None
            else InvitationList()
        )
        return Town(
            host=host,
            name=parsed.name,
            region=Region(start=start, end=end),
            spawn=spawn,
            leader=PlayerId(parsed.leader),
            members=members,
            option=TownOption.from_document(parsed.option.model_dump()),
            capacity=parsed.maxVillagers,
            invitations=invitations,
            treasury=parsed.townyMoney,
            rules=rules,
        )
    except MalformedDocumentError:
        raise
    except ValueError as exc:
        raise MalformedDocumentError(f"town document {parsed.name!r} is invalid: {exc}") from exc


def _parse_villagers(raw: str) -> dict[PlayerId, Role]:
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedDocumentError(f"villagers is not valid JSON: {exc}") from exc
    # An empty roster has historically been written as a JSON list.
    if decoded == []:
        return {}
    if not isinstance(decoded, dict):
        raise MalformedDocumentError("villagers must encode a mapping of player to role")
    members: dict[PlayerId, Role] = {}
    for player, role in decoded.items():
        if not isinstance(role, str):
            raise MalformedDocumentError(f"role for {player} must be a string")
        try:
            members[PlayerId(player)] = Role.parse(role)
        except InvalidRoleError as exc:
            raise MalformedDocumentError(str(exc)) from exc
    return members
