"""Exceptions raised by town operations."""

from __future__ import annotations


class TownError(Exception):
    """Base class for recoverable town rule violations."""


class InvalidRoleError(TownError, ValueError):
    pass


class AlreadyMemberError(TownError):
    pass


class NotAMemberError(TownError):
    pass


class CapacityExceededError(TownError):
    pass


class InsufficientRoleError(TownError):
    pass


class AlreadyInvitedError(TownError):
    pass


class NoSuchInvitationError(TownError):
    pass


class TownExistsError(TownError):
    pass


class UnknownTownError(TownError):
    pass


class RegionOverlapError(TownError):
    pass


class TownLoadError(TownError):
    """A single stored town could not be reconstructed."""


class MalformedDocumentError(TownLoadError):
    pass


class UnresolvedHostContextError(TownLoadError):
    pass
