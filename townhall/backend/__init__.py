"""Backend package for town membership, invitations, treasury and persistence."""

from .codec import deserialize, serialize
from .config import BackendSettings, load_settings
from .errors import (
    AlreadyInvitedError,
    AlreadyMemberError,
    CapacityExceededError,
    InsufficientRoleError,
    InvalidRoleError,
    MalformedDocumentError,
    NoSuchInvitationError,
    NotAMemberError,
    RegionOverlapError,
    TownError,
    TownExistsError,
    UnknownTownError,
    UnresolvedHostContextError,
)
from .host import HostContext, LocalHostContext, TownDeleted
from .invitation import Invitation, InvitationList, InvitationStatus
from .models import PlayerId, Position, Region, Role, TownOption
from .registry import TownRegistry
from .store import InMemoryTownStore, JsonDirectoryTownStore, PostgresTownStore, TownStore, create_store
from .town import CapacityCheck, Town, TownRules

__all__ = [
    "AlreadyInvitedError",
    "AlreadyMemberError",
    "BackendSettings",
    "CapacityCheck",
    "CapacityExceededError",
    "create_store",
    "deserialize",
    "HostContext",
    "InMemoryTownStore",
    "InsufficientRoleError",
    "Invitation",
    "InvitationList",
    "InvitationStatus",
    "InvalidRoleError",
    "JsonDirectoryTownStore",
    "load_settings",
    "LocalHostContext",
    "MalformedDocumentError",
    "NoSuchInvitationError",
    "NotAMemberError",
    "PlayerId",
    "Position",
    "PostgresTownStore",
    "Region",
    "RegionOverlapError",
    "Role",
    "serialize",
    "Town",
    "TownDeleted",
    "TownError",
    "TownExistsError",
    "TownOption",
    "TownRegistry",
    "TownRules",
    "TownStore",
    "UnknownTownError",
    "UnresolvedHostContextError",
]
