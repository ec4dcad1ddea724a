"""Host services consumed by towns, lifecycle events, and a local host implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Protocol, runtime_checkable

from .logging_config import get_logger
from .models import PlayerId, Session

if TYPE_CHECKING:
    from .town import Town

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class TownEvent:
    town: Town


@dataclass(frozen=True, eq=False)
class TownDeleted(TownEvent):
    initiator: PlayerId


@runtime_checkable
class HostContext(Protocol):
    def session_for(self, player: PlayerId) -> Session | None:
        """Return the online session for ``player`` or None when offline."""

    def broadcast(self, message: str, recipients: Iterable[Session]) -> None:
        """Deliver ``message`` to every session in ``recipients``."""

    def translate(self, key: str, *params: str) -> str:
        """Return the localized string for ``key``."""

    def dispatch(self, event: TownEvent) -> None:
        """Publish a town lifecycle event to host listeners."""


DEFAULT_TRANSLATIONS: dict[str, str] = {
    "towny.message.forceQuit": "{0} has been removed from the town.",
    "towny.role.Leader": "Leader",
    "towny.role.Co-Leader": "Co-Leader",
    "towny.role.Villager": "Villager",
}


@dataclass(eq=False)
class LocalSession:
    name: str
    inbox: list[str] = field(default_factory=list)

    def send_message(self, message: str) -> None:
        self.inbox.append(message)


class LocalHostContext:
    """In-process host used by the HTTP service and tests."""

    def __init__(self, translations: dict[str, str] | None = None) -> None:
        self.translations = dict(DEFAULT_TRANSLATIONS if translations is None else translations)
        self.broadcasts: list[tuple[str, frozenset[str]]] = []
        self.events: list[TownEvent] = []
        self._sessions: dict[PlayerId, LocalSession] = {}
        self._listeners: list[Callable[[TownEvent], None]] = []

    def connect(self, name: str) -> LocalSession:
        session = LocalSession(name=name)
        self._sessions[PlayerId(name)] = session
        return session

    def disconnect(self, player: PlayerId) -> None:
        self._sessions.pop(player, None)

    def session_for(self, player: PlayerId) -> LocalSession | None:
        return self._sessions.get(player)

    def broadcast(self, message: str, recipients: Iterable[Session]) -> None:
        delivered = list(recipients)
        for session in delivered:
            session.send_message(message)
        self.broadcasts.append((message, frozenset(session.name for session in delivered)))

    def translate(self, key: str, *params: str) -> str:
        template = self.translations.get(key)
        if template is None:
            return key
        return template.format(*params)

    def subscribe(self, listener: Callable[[TownEvent], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def dispatch(self, event: TownEvent) -> None:
        self.events.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Town event listener failed", event=type(event).__name__, town=event.town.name)
