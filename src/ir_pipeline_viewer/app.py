from __future__ import annotations

from pathlib import Path
import argparse
import json
import logging
from typing import Any, Callable, Mapping

from textual.app import App, ComposeResult
from textual import events
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, Input, Label, ListItem, ListView, TextArea
from textual.widgets.text_area import Selection
from textual.binding import Binding
from rich.text import Text

from .config import ViewOptions
from .core import CompileResult, CompilerInfo, PaneSnapshot, ResultBuffer, ViewportSelection
from .errors import MissingSurfaceError, PayloadError
from .events import (
    CompileResultEvent,
    CompilerEvent,
    EditorLinkLineEvent,
    EventHub,
    EventKind,
    PaneRenamedEvent,
    SettingsEvent,
    get_hub,
)
from .pane import PaneController, PaneGeometry, Position


logger = logging.getLogger(__name__)


class TextAreaSurface:
    """Rendering surface backed by a read-only Textual ``TextArea``."""

    def __init__(self, text_area: TextArea) -> None:
        self._text_area: TextArea | None = text_area
        text_area.read_only = True

    @property
    def text_area(self) -> TextArea:
        if self._text_area is None:
            raise MissingSurfaceError("text area surface was disposed")
        return self._text_area

    def set_value(self, text: str) -> None:
        self.text_area.load_text(text)

    def get_position(self) -> Position | None:
        row, column = self.text_area.cursor_location
        return Position(line=row + 1, column=column + 1)

    def get_selection(self) -> ViewportSelection | None:
        selection = self.text_area.selection
        if selection.is_empty:
            return None
        start, end = sorted((selection.start, selection.end))
        return ViewportSelection(
            start_line=start[0] + 1,
            start_column=start[1] + 1,
            end_line=end[0] + 1,
            end_column=end[1] + 1,
        )

    def set_selection(self, selection: ViewportSelection) -> None:
        last_row = max(0, self.text_area.document.line_count - 1)
        start = (min(selection.start_line - 1, last_row), max(0, selection.start_column - 1))
        end = (min(selection.end_line - 1, last_row), max(0, selection.end_column - 1))
        self.text_area.selection = Selection(start=start, end=end)

    def reveal_lines_in_center(self, start_line: int, end_line: int) -> None:
        self.text_area.scroll_cursor_visible(center=True)

    def layout(self, width: int, height: int) -> None:
        self.text_area.styles.width = width
        self.text_area.styles.height = height

    def update_options(self, settings: Mapping[str, Any]) -> None:
        text_area = self.text_area
        if "show_line_numbers" in settings:
            text_area.show_line_numbers = bool(settings["show_line_numbers"])
        if "soft_wrap" in settings:
            text_area.soft_wrap = bool(settings["soft_wrap"])
        theme = settings.get("theme")
        if theme and theme in text_area.available_themes:
            text_area.theme = theme

    def dispose(self) -> None:
        self._text_area = None


class OptPipelineView(Vertical):
    DEFAULT_CSS = """
    OptPipelineView {
        width: 1fr;
    }

    #opt-toolbar {
        height: auto;
        background: $panel;
        padding: 0 1;
    }

    #opt-body {
        height: 1fr;
    }

    #opt-ir {
        width: 1fr;
    }

    #opt-passes {
        border-left: solid $accent;
    }
    """

    BINDINGS = [
        Binding("f10", "scroll_to_source", "Scroll to source"),
        Binding("ctrl+f10", "scroll_to_source", "Scroll to source", show=False),
        Binding("p", "toggle_passes", "Toggle passes"),
    ]

    def __init__(
        self,
        hub: EventHub,
        snapshot: PaneSnapshot,
        options: ViewOptions | None = None,
        pane_id: str = "opt-pipeline",
        on_state_change: Callable[[PaneSnapshot], None] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.hub = hub
        self.snapshot = snapshot
        self.options = options or ViewOptions()
        self.pane_id = pane_id
        self._on_state_change = on_state_change
        self.controller: PaneController | None = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="opt-toolbar"):
            yield Label("", id="opt-title")
        with Horizontal(id="opt-body"):
            yield TextArea(
                "",
                read_only=True,
                show_line_numbers=self.options.show_line_numbers,
                soft_wrap=self.options.soft_wrap,
                id="opt-ir",
            )
            yield ListView(id="opt-passes")

    def on_mount(self) -> None:
        passes = self.query_one("#opt-passes", ListView)
        passes.styles.width = self.options.passes_column_width
        text_area = self.query_one("#opt-ir", TextArea)
        self.controller = PaneController(
            self.hub,
            lambda: TextAreaSurface(text_area),
            self.snapshot,
            defer=self.call_after_refresh,
            measure=self._measure,
            pane_id=self.pane_id,
            on_title=self._set_title,
            on_state_change=self._on_state_change,
            on_render=self._render_passes,
        )
        self._set_title(self.controller.title)

    def on_unmount(self) -> None:
        if self.controller is not None:
            self.controller.close()

    def on_resize(self, event: events.Resize) -> None:
        if self.controller is not None:
            self.controller.resize()

    def action_scroll_to_source(self) -> None:
        if self.controller is not None:
            self.controller.scroll_to_source()

    def action_toggle_passes(self) -> None:
        passes = self.query_one("#opt-passes", ListView)
        passes.display = not passes.display
        if self.controller is not None:
            self.controller.resize()

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        index = getattr(event.item, "_line_index", None)
        if index is None:
            return
        text_area = self.query_one("#opt-ir", TextArea)
        text_area.move_cursor((index, 0), center=True)
        text_area.focus()
        event.stop()

    def _measure(self) -> PaneGeometry:
        passes = self.query_one("#opt-passes", ListView)
        toolbar = self.query_one("#opt-toolbar", Horizontal)
        return PaneGeometry(
            width=self.size.width,
            height=self.size.height,
            side_panel_width=passes.outer_size.width if passes.display else 0,
            toolbar_height=toolbar.outer_size.height,
        )

    def _set_title(self, title: str) -> None:
        self.query_one("#opt-title", Label).update(Text(title))

    def _render_passes(self, buffer: ResultBuffer) -> None:
        passes = self.query_one("#opt-passes", ListView)
        passes.clear()
        items: list[ListItem] = []
        for header in buffer.pass_headers():
            item = ListItem(Label(Text(header.label)))
            item._line_index = header.line_index  # type: ignore[attr-defined]
            items.append(item)
        if items:
            passes.extend(items)


class SourceView(Vertical):
    """Source pane; follows editor-link events addressed to its editor id."""

    DEFAULT_CSS = """
    SourceView {
        width: 1fr;
    }

    #source-title {
        background: $panel;
        padding: 0 1;
    }
    """

    def __init__(self, hub: EventHub, editor_id: int, path: Path | None, text: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.hub = hub
        self.editor_id = editor_id
        self.path = path
        self.source_text = text
        self._token: int | None = None

    def compose(self) -> ComposeResult:
        name = self.path.name if self.path else "<no source>"
        yield Label(Text(f"{name} (Editor #{self.editor_id})"), id="source-title")
        yield TextArea(self.source_text, read_only=True, show_line_numbers=True, id="source-text")

    def on_mount(self) -> None:
        self._token = self.hub.subscribe(EventKind.EDITOR_LINK_LINE, self._follow_link)

    def on_unmount(self) -> None:
        if self._token is not None:
            self.hub.unsubscribe(EventKind.EDITOR_LINK_LINE, self._token)
            self._token = None

    def _follow_link(self, event: EditorLinkLineEvent) -> None:
        if event.editor_id != self.editor_id:
            return
        text_area = self.query_one("#source-text", TextArea)
        row = event.line - 1
        if row < 0 or row >= text_area.document.line_count:
            logger.debug("editor %s has no line %s", self.editor_id, event.line)
            return
        line_text = text_area.document.get_line(row)
        if event.column_start < 0:
            start, end = (row, 0), (row, len(line_text))
        else:
            start, end = (row, event.column_start - 1), (row, max(event.column_end - 1, event.column_start - 1))
        text_area.selection = Selection(start=start, end=end)
        if event.reveal:
            text_area.scroll_cursor_visible(center=True)


class RenameScreen(ModalScreen[str | None]):
    CSS = """
    RenameScreen {
        align: center middle;
    }

    #rename-input {
        width: 60%;
        border: round $accent;
        background: $surface;
    }
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
    ]

    def __init__(self, current: str) -> None:
        super().__init__()
        self.current = current

    def compose(self) -> ComposeResult:
        yield Input(value=self.current, placeholder="Pane name", id="rename-input")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip())

    def action_cancel(self) -> None:
        self.dismiss(None)


class IRPipelineApp(App):
    CSS = """
    Screen {
        layout: vertical;
    }

    #main {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "rename_pane", "Rename pane"),
    ]

    def __init__(
        self,
        result: CompileResult,
        compiler: CompilerInfo,
        snapshot: PaneSnapshot,
        source_path: Path | None = None,
        options: ViewOptions | None = None,
        hub: EventHub | None = None,
        state_path: Path | None = None,
    ) -> None:
        super().__init__()
        self.result = result
        self.compiler = compiler
        self.snapshot = snapshot
        self.source_path = source_path
        self.options = options or ViewOptions()
        self.hub = hub or get_hub()
        self.state_path = state_path
        self.pane_id = f"opt-pipeline-{snapshot.compiler_id}"
        self._settings_token: int | None = self.hub.subscribe(
            EventKind.REQUEST_SETTINGS, self._answer_settings_request
        )

    def compose(self) -> ComposeResult:
        yield Header()
        source_text = self.source_path.read_text(encoding="utf-8") if self.source_path else ""
        editor_id = self.snapshot.editor_id if self.snapshot.editor_id is not None else 1
        with Horizontal(id="main"):
            yield SourceView(self.hub, editor_id, self.source_path, source_text, id="source")
            yield OptPipelineView(
                self.hub,
                self.snapshot,
                self.options,
                pane_id=self.pane_id,
                on_state_change=self._save_state,
                id="opt-pipeline",
            )
        yield Footer()

    def on_mount(self) -> None:
        self.call_after_refresh(self._publish_compilation)

    def on_unmount(self) -> None:
        if self._settings_token is not None:
            self.hub.unsubscribe(EventKind.REQUEST_SETTINGS, self._settings_token)
            self._settings_token = None

    def _publish_compilation(self) -> None:
        compiler_id = self.snapshot.compiler_id
        editor_id = self.snapshot.editor_id if self.snapshot.editor_id is not None else 1
        self.hub.publish(
            CompilerEvent(
                compiler_id=compiler_id,
                compiler=self.compiler,
                options=None,
                editor_id=editor_id,
                tree_id=self.snapshot.tree_id,
            )
        )
        self.hub.publish(CompileResultEvent(compiler_id=compiler_id, compiler=self.compiler, result=self.result))

    def _answer_settings_request(self, event: Any) -> None:
        self.hub.publish(SettingsEvent(settings=self.options.as_settings()))

    def action_rename_pane(self) -> None:
        view = self.query_one(OptPipelineView)
        current = view.controller.pane_name if view.controller and view.controller.pane_name else ""
        self.push_screen(RenameScreen(current), self._apply_rename)

    def _apply_rename(self, name: str | None) -> None:
        if name is None:
            return
        self.hub.publish(PaneRenamedEvent(pane_id=self.pane_id, name=name))

    def _save_state(self, snapshot: PaneSnapshot) -> None:
        if self.state_path is None:
            return
        self.state_path.write_text(json.dumps(snapshot.to_json(), indent=2), encoding="utf-8")
        logger.info("pane state written to %s", self.state_path)


def load_compile_result(path: Path) -> tuple[CompileResult, CompilerInfo | None]:
    """Read a compile response; the optional top-level 'compiler' object describes the compiler."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise PayloadError(f"{path} is not valid JSON: {exc}") from exc
    result = CompileResult.from_json(data)
    raw_compiler = data.get("compiler")
    compiler = CompilerInfo.from_json(raw_compiler) if raw_compiler is not None else None
    return result, compiler


def load_snapshot(path: Path | None, compiler_id: int, editor_id: int) -> PaneSnapshot:
    if path is None or not path.exists():
        return PaneSnapshot(compiler_id=compiler_id, editor_id=editor_id)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise PayloadError(f"{path} is not valid JSON: {exc}") from exc
    return PaneSnapshot.from_json(data)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="LLVM opt pipeline viewer")
    parser.add_argument("result", help="Path to a compile result JSON file")
    parser.add_argument("--source", default=None, help="Path to the compiled source file")
    parser.add_argument("--compiler-name", default=None, help="Overrides the compiler name from the result file")
    parser.add_argument("--compiler-id", type=int, default=1)
    parser.add_argument("--editor-id", type=int, default=1)
    parser.add_argument("--state", default=None, help="Pane state JSON to restore and update on rename")
    parser.add_argument("--supports-view", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--show-line-numbers", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--soft-wrap", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--passes-width", type=int, default=None)
    parser.add_argument("--theme", default=None)
    parser.add_argument("--log-level", default="WARNING")
    parser.add_argument("--log-file", default=None, help="Write log records here instead of stderr")
    parsed = parser.parse_args(argv)

    logging.basicConfig(
        filename=parsed.log_file,
        level=getattr(logging, parsed.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    result_path = Path(parsed.result)
    if not result_path.exists():
        raise SystemExit(f"Compile result not found: {result_path}")
    source_path = Path(parsed.source) if parsed.source else None
    if source_path is not None and not source_path.exists():
        raise SystemExit(f"Source file not found: {source_path}")
    state_path = Path(parsed.state) if parsed.state else None

    try:
        result, loaded_compiler = load_compile_result(result_path)
        snapshot = load_snapshot(state_path, parsed.compiler_id, parsed.editor_id)
    except PayloadError as exc:
        raise SystemExit(str(exc)) from exc

    options = ViewOptions()
    if parsed.show_line_numbers is not None:
        options.show_line_numbers = parsed.show_line_numbers
    if parsed.soft_wrap is not None:
        options.soft_wrap = parsed.soft_wrap
    if parsed.passes_width is not None:
        options.passes_column_width = parsed.passes_width
    if parsed.theme is not None:
        options.theme = parsed.theme

    compiler = loaded_compiler or CompilerInfo(name="clang", supports_opt_pipeline=True)
    if parsed.compiler_name is not None:
        compiler = CompilerInfo(name=parsed.compiler_name, supports_opt_pipeline=compiler.supports_opt_pipeline)
    if parsed.supports_view is not None:
        compiler = CompilerInfo(name=compiler.name, supports_opt_pipeline=parsed.supports_view)
    app = IRPipelineApp(
        result,
        compiler,
        snapshot,
        source_path=source_path,
        options=options,
        state_path=state_path,
    )
    app.run()


if __name__ == "__main__":
    main()
