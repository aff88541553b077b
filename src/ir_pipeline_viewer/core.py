from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import re
from typing import Any, Dict, List, Optional, Sequence

from .errors import PayloadError


NO_IR_GENERATED_TEXT = "<No LLVM IR generated>"
NO_OUTPUT_TEXT = "<No output>"
UNSUPPORTED_TEXT = "<LLVM IR output is not supported for this compiler>"
DEFAULT_PANE_NAME = "LLVM Opt Pipeline Viewer"

_PASS_HEADER_RE = re.compile(r"^\s*;\s*\*\*\*\s*IR Dump (Before|After)\s+(.+?)(?:\s+on\s+(.+?))?\s*\*\*\*\s*$")
_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class SourceRef:
    file: Optional[str]
    line: int


@dataclass(frozen=True)
class DisplayLine:
    text: str
    source: Optional[SourceRef] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "DisplayLine":
        if not isinstance(data, dict) or "text" not in data:
            raise PayloadError(f"display line needs a 'text' field: {data!r}")
        raw_source = data.get("source")
        source = None
        if isinstance(raw_source, dict) and raw_source.get("line") is not None:
            source = SourceRef(file=raw_source.get("file"), line=_as_int(raw_source["line"], "source line"))
        return cls(text=str(data["text"]), source=source)


class ResultKind(Enum):
    POPULATED = "populated"
    EMPTY = "empty"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class CompilerInfo:
    name: str
    supports_opt_pipeline: bool

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CompilerInfo":
        if not isinstance(data, dict):
            raise PayloadError(f"compiler must be an object, got {type(data).__name__}")
        return cls(
            name=str(data.get("name", "")),
            supports_opt_pipeline=bool(data.get("supportsLLVMOptPipelineView", False)),
        )


@dataclass(frozen=True)
class CompileResult:
    has_output: bool
    output: tuple[DisplayLine, ...] = ()

    def classify(self, compiler: CompilerInfo) -> ResultKind:
        """Collapse the result flags and the compiler capability into one variant.

        Capability is checked before ``has_output``: a compiler that
        reports no capability wins over any output it still attached to
        the result, so the unsupported text is never replaced.
        """
        if not compiler.supports_opt_pipeline:
            return ResultKind.UNSUPPORTED
        if self.has_output:
            return ResultKind.POPULATED
        return ResultKind.EMPTY

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CompileResult":
        if not isinstance(data, dict):
            raise PayloadError(f"compile result must be an object, got {type(data).__name__}")
        has_output = bool(data.get("hasLLVMOptPipelineOutput", False))
        raw_output = data.get("llvmOptPipelineOutput") or []
        if not isinstance(raw_output, list):
            raise PayloadError("llvmOptPipelineOutput must be a list of lines")
        output = tuple(DisplayLine.from_json(item) for item in raw_output)
        return cls(has_output=has_output, output=output)


@dataclass
class CompilerBinding:
    compiler_id: int
    compiler_name: str = ""
    editor_id: Optional[int] = None
    tree_id: Optional[int] = None
    supports_view: Optional[bool] = None

    def matches(self, compiler_id: int) -> bool:
        return self.compiler_id == compiler_id


@dataclass(frozen=True)
class ViewportSelection:
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def to_json(self) -> Dict[str, int]:
        return {
            "startLineNumber": self.start_line,
            "startColumn": self.start_column,
            "endLineNumber": self.end_line,
            "endColumn": self.end_column,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ViewportSelection":
        if not isinstance(data, dict):
            raise PayloadError(f"selection must be an object, got {type(data).__name__}")
        for key in ("startLineNumber", "endLineNumber"):
            if key not in data:
                raise PayloadError(f"selection needs '{key}'")
        return cls(
            start_line=_as_int(data["startLineNumber"], "startLineNumber"),
            start_column=_as_int(data.get("startColumn", 1), "startColumn"),
            end_line=_as_int(data["endLineNumber"], "endLineNumber"),
            end_column=_as_int(data.get("endColumn", 1), "endColumn"),
        )


@dataclass
class PaneSnapshot:
    """Restorable pane state, in the host layout's persisted shape."""

    compiler_id: int
    compiler_name: str = ""
    editor_id: Optional[int] = None
    tree_id: Optional[int] = None
    selection: Optional[ViewportSelection] = None
    pane_name: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.compiler_id,
            "compilerName": self.compiler_name,
            "editorid": self.editor_id,
            "treeid": self.tree_id,
        }
        if self.selection is not None:
            data["selection"] = self.selection.to_json()
        if self.pane_name:
            data["paneName"] = self.pane_name
        return data

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PaneSnapshot":
        if not isinstance(data, dict) or "id" not in data:
            raise PayloadError("pane state needs a compiler 'id'")
        raw_selection = data.get("selection")
        editor_id = data.get("editorid")
        tree_id = data.get("treeid")
        return cls(
            compiler_id=_as_int(data["id"], "id"),
            compiler_name=str(data.get("compilerName", "")),
            editor_id=_as_int(editor_id, "editorid") if editor_id is not None else None,
            tree_id=_as_int(tree_id, "treeid") if tree_id is not None else None,
            selection=ViewportSelection.from_json(raw_selection) if raw_selection else None,
            pane_name=data.get("paneName"),
        )


class Lifecycle(Enum):
    UNINITIALIZED = "uninitialized"
    BOUND = "bound"
    RENDERING = "rendering"
    CLOSED = "closed"


@dataclass(frozen=True)
class PassHeader:
    line_index: int
    when: str
    pass_name: str
    function: Optional[str]

    @property
    def label(self) -> str:
        if self.function:
            return f"{self.pass_name} ({self.function})"
        return self.pass_name


class ResultBuffer:
    def __init__(self) -> None:
        self.lines: List[DisplayLine] = []

    def __len__(self) -> int:
        return len(self.lines)

    def replace(self, lines: Sequence[DisplayLine]) -> None:
        """Store ``lines``, splitting any multi-line text so each entry is one physical line."""
        physical: List[DisplayLine] = []
        for line in lines:
            parts = _NEWLINE_RE.split(line.text)
            if len(parts) == 1:
                physical.append(line)
            else:
                physical.extend(DisplayLine(text=part, source=line.source) for part in parts)
        self.lines = physical

    def rendered_text(self) -> str:
        if not self.lines:
            return NO_IR_GENERATED_TEXT
        return "\n".join(line.text for line in self.lines)

    def pass_headers(self) -> List[PassHeader]:
        headers: List[PassHeader] = []
        for idx, line in enumerate(self.lines):
            match = _PASS_HEADER_RE.match(line.text)
            if match:
                headers.append(
                    PassHeader(
                        line_index=idx,
                        when=match.group(1).lower(),
                        pass_name=match.group(2),
                        function=match.group(3),
                    )
                )
        return headers


@dataclass
class LineMapper:
    buffer: ResultBuffer = field(default_factory=ResultBuffer)

    def resolve(self, display_line: int) -> Optional[SourceRef]:
        """Return the source location behind a 1-based rendered line, or None."""
        index = display_line - 1
        if index < 0 or index >= len(self.buffer.lines):
            return None
        source = self.buffer.lines[index].source
        if source is None or source.file is None:
            return None
        return source


def format_title(pane_name: Optional[str], binding: CompilerBinding) -> str:
    name = pane_name or DEFAULT_PANE_NAME
    editor = binding.editor_id if binding.editor_id is not None else "?"
    compiler = f"{binding.compiler_name} " if binding.compiler_name else ""
    return f"{name} {compiler}(Editor #{editor}, Compiler #{binding.compiler_id})"


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise PayloadError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"{name} must be an integer, got {value!r}") from exc
