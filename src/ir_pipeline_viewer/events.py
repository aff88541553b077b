from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, ClassVar, Mapping

from .core import CompileResult, CompilerInfo
from .errors import EventKindMismatchError


logger = logging.getLogger(__name__)


class EventKind(Enum):
    COMPILE_RESULT = "compileResult"
    COMPILER = "compiler"
    PANE_RENAMED = "renamePane"
    SETTINGS = "settingsChange"
    OPT_PIPELINE_VIEW_OPENED = "llvmOptPipelineViewOpened"
    OPT_PIPELINE_VIEW_CLOSED = "llvmOptPipelineViewClosed"
    REQUEST_SETTINGS = "requestSettings"
    EDITOR_LINK_LINE = "editorLinkLine"


@dataclass(frozen=True)
class Event:
    kind: ClassVar[EventKind]


@dataclass(frozen=True)
class CompileResultEvent(Event):
    kind: ClassVar[EventKind] = EventKind.COMPILE_RESULT
    compiler_id: int
    compiler: CompilerInfo
    result: CompileResult


@dataclass(frozen=True)
class CompilerEvent(Event):
    kind: ClassVar[EventKind] = EventKind.COMPILER
    compiler_id: int
    compiler: CompilerInfo | None
    options: Any
    editor_id: int | None
    tree_id: int | None


@dataclass(frozen=True)
class PaneRenamedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.PANE_RENAMED
    pane_id: str
    name: str | None = None


@dataclass(frozen=True)
class SettingsEvent(Event):
    kind: ClassVar[EventKind] = EventKind.SETTINGS
    settings: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OptPipelineViewOpenedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.OPT_PIPELINE_VIEW_OPENED
    compiler_id: int


@dataclass(frozen=True)
class OptPipelineViewClosedEvent(Event):
    kind: ClassVar[EventKind] = EventKind.OPT_PIPELINE_VIEW_CLOSED
    compiler_id: int


@dataclass(frozen=True)
class RequestSettingsEvent(Event):
    kind: ClassVar[EventKind] = EventKind.REQUEST_SETTINGS


@dataclass(frozen=True)
class EditorLinkLineEvent(Event):
    kind: ClassVar[EventKind] = EventKind.EDITOR_LINK_LINE
    editor_id: int
    line: int
    column_start: int = -1
    column_end: int = -1
    reveal: bool = True


PAYLOAD_TYPES: dict[EventKind, type[Event]] = {
    EventKind.COMPILE_RESULT: CompileResultEvent,
    EventKind.COMPILER: CompilerEvent,
    EventKind.PANE_RENAMED: PaneRenamedEvent,
    EventKind.SETTINGS: SettingsEvent,
    EventKind.OPT_PIPELINE_VIEW_OPENED: OptPipelineViewOpenedEvent,
    EventKind.OPT_PIPELINE_VIEW_CLOSED: OptPipelineViewClosedEvent,
    EventKind.REQUEST_SETTINGS: RequestSettingsEvent,
    EventKind.EDITOR_LINK_LINE: EditorLinkLineEvent,
}

Handler = Callable[[Any], None]


class EventHub:
    """Session-wide bus; delivery is synchronous and in subscription order."""

    def __init__(self, name: str = "session") -> None:
        self.name = name
        self._handlers: dict[EventKind, dict[int, Handler]] = {kind: {} for kind in EventKind}
        self._next_token = 0

    def subscribe(self, kind: EventKind, handler: Handler) -> int:
        token = self._next_token
        self._next_token += 1
        self._handlers[kind][token] = handler
        return token

    def unsubscribe(self, kind: EventKind, token: int) -> None:
        self._handlers[kind].pop(token, None)

    def publish(self, event: Event) -> int:
        expected = PAYLOAD_TYPES[event.kind]
        if type(event) is not expected:
            raise EventKindMismatchError(
                f"{type(event).__name__} cannot be published as {event.kind.name}; expected {expected.__name__}"
            )
        # copy so handlers may unsubscribe while being dispatched
        handlers = list(self._handlers[event.kind].values())
        for handler in handlers:
            handler(event)
        return len(handlers)

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._handlers[kind])


class EventChannel:
    """One pane's view of the hub: tracks its subscriptions and goes silent once closed."""

    def __init__(self, hub: EventHub) -> None:
        self.hub = hub
        self._tokens: list[tuple[EventKind, int]] = []
        self.closed = False

    def on(self, kind: EventKind, handler: Handler) -> None:
        if self.closed:
            return
        self._tokens.append((kind, self.hub.subscribe(kind, handler)))

    def emit(self, event: Event) -> None:
        if self.closed:
            logger.debug("dropping %s emitted after close", event.kind.name)
            return
        self.hub.publish(event)

    def unsubscribe(self) -> None:
        for kind, token in self._tokens:
            self.hub.unsubscribe(kind, token)
        self._tokens = []

    def close(self) -> None:
        self.unsubscribe()
        self.closed = True


_HUBS: dict[str, EventHub] = {}


def get_hub(name: str = "session") -> EventHub:
    if name not in _HUBS:
        _HUBS[name] = EventHub(name)
    return _HUBS[name]


__all__ = [
    "CompileResultEvent",
    "CompilerEvent",
    "EditorLinkLineEvent",
    "Event",
    "EventChannel",
    "EventHub",
    "EventKind",
    "OptPipelineViewClosedEvent",
    "OptPipelineViewOpenedEvent",
    "PaneRenamedEvent",
    "RequestSettingsEvent",
    "SettingsEvent",
    "get_hub",
]
