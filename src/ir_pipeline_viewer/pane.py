from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any, Mapping, Protocol

from .core import (
    NO_OUTPUT_TEXT,
    UNSUPPORTED_TEXT,
    CompileResult,
    CompilerBinding,
    CompilerInfo,
    DisplayLine,
    Lifecycle,
    LineMapper,
    PaneSnapshot,
    ResultBuffer,
    ResultKind,
    ViewportSelection,
    format_title,
)
from .errors import MissingSurfaceError
from .events import (
    CompileResultEvent,
    CompilerEvent,
    EditorLinkLineEvent,
    EventChannel,
    EventHub,
    EventKind,
    OptPipelineViewClosedEvent,
    OptPipelineViewOpenedEvent,
    PaneRenamedEvent,
    RequestSettingsEvent,
    SettingsEvent,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    line: int
    column: int


@dataclass(frozen=True)
class PaneGeometry:
    width: int
    height: int
    side_panel_width: int
    toolbar_height: int


class RenderingSurface(Protocol):
    def set_value(self, text: str) -> None: ...

    def get_position(self) -> Position | None: ...

    def get_selection(self) -> ViewportSelection | None: ...

    def set_selection(self, selection: ViewportSelection) -> None: ...

    def reveal_lines_in_center(self, start_line: int, end_line: int) -> None: ...

    def layout(self, width: int, height: int) -> None: ...

    def update_options(self, settings: Mapping[str, Any]) -> None: ...

    def dispose(self) -> None: ...


class PaneController:
    """Drives one opt-pipeline pane from hub events.

    The controller owns the result buffer and its line mapper, keeps the
    compiler binding current, and is the only thing that talks to the
    rendering surface. ``defer`` queues a no-argument callback for the next
    idle point; ``measure`` reports the pane box when a deferred layout runs.
    """

    def __init__(
        self,
        hub: EventHub,
        surface_factory: Callable[[], RenderingSurface],
        snapshot: PaneSnapshot,
        defer: Callable[[Callable[[], None]], Any],
        measure: Callable[[], PaneGeometry],
        pane_id: str = "opt-pipeline",
        on_title: Callable[[str], None] | None = None,
        on_state_change: Callable[[PaneSnapshot], None] | None = None,
        on_render: Callable[[ResultBuffer], None] | None = None,
    ) -> None:
        self.pane_id = pane_id
        self.binding = CompilerBinding(
            compiler_id=snapshot.compiler_id,
            compiler_name=snapshot.compiler_name,
            editor_id=snapshot.editor_id,
            tree_id=snapshot.tree_id,
        )
        self.pane_name = snapshot.pane_name
        self.selection = snapshot.selection
        self.buffer = ResultBuffer()
        self.mapper = LineMapper(self.buffer)
        self.lifecycle = Lifecycle.UNINITIALIZED
        self.title = format_title(self.pane_name, self.binding)
        self._defer = defer
        self._measure = measure
        self._on_title = on_title
        self._on_state_change = on_state_change
        self._on_render = on_render
        self._resize_pending = False
        self.surface: RenderingSurface | None = surface_factory()

        self.channel = EventChannel(hub)
        self.channel.on(EventKind.COMPILE_RESULT, self._handle_compile_result)
        self.channel.on(EventKind.COMPILER, self._handle_compiler)
        self.channel.on(EventKind.PANE_RENAMED, self._handle_renamed)
        self.channel.on(EventKind.SETTINGS, self._handle_settings)

        logger.info("opt pipeline pane opened for compiler %s", self.binding.compiler_id)
        self.channel.emit(OptPipelineViewOpenedEvent(compiler_id=self.binding.compiler_id))
        self.channel.emit(RequestSettingsEvent())

    @property
    def closed(self) -> bool:
        return self.lifecycle is Lifecycle.CLOSED

    def _require_surface(self) -> RenderingSurface:
        if self.surface is None:
            raise MissingSurfaceError(f"pane {self.pane_id} has no rendering surface")
        return self.surface

    def _handle_compile_result(self, event: CompileResultEvent) -> None:
        self.on_compile_result(event.compiler_id, event.compiler, event.result)

    def _handle_compiler(self, event: CompilerEvent) -> None:
        self.on_compiler(event.compiler_id, event.compiler, event.options, event.editor_id, event.tree_id)

    def _handle_renamed(self, event: PaneRenamedEvent) -> None:
        if event.pane_id != self.pane_id:
            return
        self.rename(event.name)

    def _handle_settings(self, event: SettingsEvent) -> None:
        if self.closed:
            return
        self._require_surface().update_options(event.settings)

    def on_compiler(
        self,
        compiler_id: int,
        compiler: CompilerInfo | None,
        options: Any,
        editor_id: int | None,
        tree_id: int | None,
    ) -> None:
        if self.closed or not self.binding.matches(compiler_id):
            logger.debug("ignoring compiler event for %s in pane bound to %s", compiler_id, self.binding.compiler_id)
            return
        self.binding.compiler_name = compiler.name if compiler else ""
        self.binding.editor_id = editor_id
        self.binding.tree_id = tree_id
        self.binding.supports_view = compiler.supports_opt_pipeline if compiler else None
        self._update_title()
        if compiler and not compiler.supports_opt_pipeline:
            self._require_surface().set_value(UNSUPPORTED_TEXT)
        if self.lifecycle is Lifecycle.UNINITIALIZED:
            self.lifecycle = Lifecycle.BOUND

    def on_compile_result(self, compiler_id: int, compiler: CompilerInfo, result: CompileResult) -> None:
        if self.closed or not self.binding.matches(compiler_id):
            logger.debug("ignoring compile result for %s in pane bound to %s", compiler_id, self.binding.compiler_id)
            return
        # the result's own compiler record is the latest capability reading
        self.binding.supports_view = compiler.supports_opt_pipeline
        kind = result.classify(compiler)
        if kind is ResultKind.POPULATED:
            self.show_results(result.output)
        elif kind is ResultKind.EMPTY:
            self.show_results([DisplayLine(text=NO_OUTPUT_TEXT)])

    def show_results(self, lines: list[DisplayLine] | tuple[DisplayLine, ...]) -> None:
        if self.closed:
            return
        surface = self._require_surface()
        self.buffer.replace(lines)
        surface.set_value(self.buffer.rendered_text())
        if self._on_render is not None:
            self._on_render(self.buffer)

        if self.lifecycle is not Lifecycle.RENDERING:
            if self.selection is not None:
                surface.set_selection(self.selection)
                surface.reveal_lines_in_center(self.selection.start_line, self.selection.end_line)
            self.lifecycle = Lifecycle.RENDERING

    def scroll_to_source(self) -> EditorLinkLineEvent | None:
        if self.closed:
            return None
        position = self._require_surface().get_position()
        if position is None:
            return None
        source = self.mapper.resolve(position.line)
        if source is None or self.binding.editor_id is None:
            logger.debug("line %s has no source mapping", position.line)
            return None
        event = EditorLinkLineEvent(editor_id=self.binding.editor_id, line=source.line)
        self.channel.emit(event)
        return event

    def resize(self) -> None:
        if self.closed or self._resize_pending:
            return
        self._resize_pending = True
        self._defer(self._apply_layout)

    def _apply_layout(self) -> None:
        self._resize_pending = False
        if self.closed:
            return
        geometry = self._measure()
        width = max(0, geometry.width - geometry.side_panel_width)
        height = max(0, geometry.height - geometry.toolbar_height)
        self._require_surface().layout(width, height)

    def rename(self, name: str | None) -> None:
        if self.closed:
            return
        if name is not None:
            self.pane_name = name or None
        self._update_title()
        if self._on_state_change is not None:
            self._on_state_change(self.current_state())

    def current_state(self) -> PaneSnapshot:
        selection = self.selection
        if self.surface is not None:
            selection = self.surface.get_selection() or selection
        return PaneSnapshot(
            compiler_id=self.binding.compiler_id,
            compiler_name=self.binding.compiler_name,
            editor_id=self.binding.editor_id,
            tree_id=self.binding.tree_id,
            selection=selection,
            pane_name=self.pane_name,
        )

    def _update_title(self) -> None:
        self.title = format_title(self.pane_name, self.binding)
        if self._on_title is not None:
            self._on_title(self.title)

    def close(self) -> None:
        if self.closed:
            return
        self.channel.unsubscribe()
        self.channel.emit(OptPipelineViewClosedEvent(compiler_id=self.binding.compiler_id))
        self.channel.close()
        self.lifecycle = Lifecycle.CLOSED
        if self.surface is not None:
            self.surface.dispose()
            self.surface = None
        logger.info("opt pipeline pane closed for compiler %s", self.binding.compiler_id)
