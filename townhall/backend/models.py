"""Value types shared by the town domain: roles, player ids, coordinates and options."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .errors import InvalidRoleError


class Role(str, Enum):
    LEADER = "Leader"
    CO_LEADER = "Co-Leader"
    VILLAGER = "Villager"

    @classmethod
    def parse(cls, raw: Role | str) -> Role:
        """Return the role named by ``raw`` or raise InvalidRoleError."""
        if isinstance(raw, Role):
            return raw
        try:
            return cls(raw)
        except ValueError:
            raise InvalidRoleError(f"{raw} is invalid role.") from None


class Session(Protocol):
    """Minimal view of an online player session handed out by the host."""

    name: str

    def send_message(self, message: str) -> None:
        ...


@dataclass(frozen=True)
class PlayerId:
    """Case-insensitive player identifier."""

    value: str

    def __post_init__(self) -> None:
        normalized = str(self.value).strip().lower()
        if normalized == "":
            raise ValueError("player id must not be empty")
        object.__setattr__(self, "value", normalized)

    @classmethod
    def of(cls, session: Session) -> PlayerId:
        return cls(session.name)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Position:
    world: str
    x: float
    y: float
    z: float

    def to_hash(self) -> str:
        return f"{self.world};{float(self.x)};{float(self.y)};{float(self.z)}"

    @classmethod
    def from_hash(cls, raw: str) -> Position:
        world, x, y, z = raw.rsplit(";", 3)
        if world == "":
            raise ValueError(f"position hash without world: {raw!r}")
        return cls(world=world, x=float(x), y=float(y), z=float(z))


@dataclass(frozen=True)
class Region:
    """Axis-aligned box between two corners in one world."""

    start: Position
    end: Position

    def __post_init__(self) -> None:
        if self.start.world != self.end.world:
            raise ValueError("region corners must be in the same world")

    @property
    def world(self) -> str:
        return self.start.world

    def bounds(self) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
        low = (min(self.start.x, self.end.x), min(self.start.y, self.end.y), min(self.start.z, self.end.z))
        high = (max(self.start.x, self.end.x), max(self.start.y, self.end.y), max(self.start.z, self.end.z))
        return low, high

    def contains(self, position: Position) -> bool:
        if position.world != self.world:
            return False
        low, high = self.bounds()
        point = (position.x, position.y, position.z)
        return all(low[axis] <= point[axis] <= high[axis] for axis in range(3))

    def overlaps(self, other: Region) -> bool:
        if other.world != self.world:
            return False
        low, high = self.bounds()
        other_low, other_high = other.bounds()
        return all(low[axis] <= other_high[axis] and other_low[axis] <= high[axis] for axis in range(3))


@dataclass(frozen=True)
class TownOption:
    """Per-town flags fixed when the town is founded."""

    pvp: bool = False
    fire_spread: bool = False
    mob_spawning: bool = True
    public_spawn: bool = False

    def to_document(self) -> dict[str, Any]:
        return {
            "pvp": self.pvp,
            "fireSpread": self.fire_spread,
            "mobSpawning": self.mob_spawning,
            "publicSpawn": self.public_spawn,
        }

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> TownOption:
        defaults = cls()
        return cls(
            pvp=bool(document.get("pvp", defaults.pvp)),
            fire_spread=bool(document.get("fireSpread", defaults.fire_spread)),
            mob_spawning=bool(document.get("mobSpawning", defaults.mob_spawning)),
            public_spawn=bool(document.get("publicSpawn", defaults.public_spawn)),
        )
