"""Registry of live towns backed by a document store."""

from __future__ import annotations

import threading

from .codec import deserialize, serialize
from .errors import (
    AlreadyMemberError,
    RegionOverlapError,
    TownExistsError,
    TownLoadError,
    UnknownTownError,
)
from .host import HostContext, TownDeleted
from .logging_config import get_logger
from .models import PlayerId, Position, Region, TownOption
from .store import InMemoryTownStore, TownStore
from .town import Town, TownRules

logger = get_logger(__name__)


class TownRegistry:
    """Owns every loaded town; the lock guards only the name index."""

    def __init__(self, host: HostContext, store: TownStore | None = None, rules: TownRules | None = None) -> None:
        self.host = host
        self.store = store if store is not None else InMemoryTownStore()
        self.rules = rules or TownRules()
        self._towns: dict[str, Town] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._towns)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        with self._lock:
            return name.lower() in self._towns

    def all(self) -> list[Town]:
        with self._lock:
            return list(self._towns.values())

    def get(self, name: str) -> Town:
        with self._lock:
            town = self._towns.get(name.lower())
        if town is None:
            raise UnknownTownError(f"no town named {name}")
        return town

    def town_of(self, player: PlayerId) -> Town | None:
        for town in self.all():
            if town.is_member(player):
                return town
        return None

    def town_at(self, position: Position) -> Town | None:
        for town in self.all():
            if town.region.contains(position):
                return town
        return None

    def found_town(
        self,
        name: str,
        leader: PlayerId,
        region: Region,
        spawn: Position | None = None,
        option: TownOption | None = None,
    ) -> Town:
        with self._lock:
            if name.lower() in self._towns:
                raise TownExistsError(f"a town named {name} already exists")
            for other in self._towns.values():
                if other.region.overlaps(region):
                    raise RegionOverlapError(f"{name} overlaps {other.name}")
                if other.is_member(leader):
                    raise AlreadyMemberError(f"{leader} already belongs to {other.name}")
            town = Town(
                host=self.host,
                name=name,
                region=region,
                spawn=spawn or region.start,
                leader=leader,
                option=option,
                rules=self.rules,
            )
            self._towns[name.lower()] = town
        try:
            self.save(town)
        except Exception:
            with self._lock:
                self._towns.pop(name.lower(), None)
            logger.exception("Town founding rolled back", town=name)
            raise
        logger.info("Town founded", town=name, leader=leader.value, world=region.world)
        return town

    def delete_town(self, name: str, initiator: PlayerId) -> Town:
        """Delete the stored document first; the town stays live if the store fails."""
        town = self.get(name)
        self.store.delete_document(town.name)
        with self._lock:
            if self._towns.get(name.lower()) is not town:
                raise UnknownTownError(f"no town named {name}")
            del self._towns[name.lower()]
        logger.info("Town deleted", town=town.name, initiator=initiator.value)
        self.host.dispatch(TownDeleted(town=town, initiator=initiator))
        return town

    def save(self, town: Town) -> None:
        self.store.save_document(town.name, serialize(town))

    def save_all(self) -> int:
        towns = self.all()
        for town in towns:
            self.save(town)
        return len(towns)

    def load_all(self) -> int:
        """Load every stored town, skipping and reporting the ones that fail."""
        loaded = 0
        for key, document in self.store.load_documents():
            try:
                town = deserialize(document, self.host, rules=self.rules)
            except TownLoadError as exc:
                logger.error("Skipping unloadable town", town=key, error=str(exc), kind=type(exc).__name__)
                continue
            with self._lock:
                if town.name.lower() in self._towns:
                    logger.warning("Skipping duplicate town", town=town.name)
                    continue
                self._towns[town.name.lower()] = town
            loaded += 1
        logger.info("Towns loaded", count=loaded)
        return loaded
