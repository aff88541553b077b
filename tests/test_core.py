"""Tests for the result buffer, line mapper and payload records."""

from __future__ import annotations

import unittest

from ir_pipeline_viewer.config import ViewOptions
from ir_pipeline_viewer.core import (
    DEFAULT_PANE_NAME,
    NO_IR_GENERATED_TEXT,
    CompileResult,
    CompilerBinding,
    CompilerInfo,
    DisplayLine,
    LineMapper,
    PaneSnapshot,
    ResultBuffer,
    ResultKind,
    SourceRef,
    ViewportSelection,
    format_title,
)
from ir_pipeline_viewer.errors import PayloadError


def _buffer(*lines: DisplayLine) -> ResultBuffer:
    buffer = ResultBuffer()
    buffer.replace(lines)
    return buffer


class ResultBufferTests(unittest.TestCase):
    def test_empty_buffer_renders_placeholder_not_empty_string(self) -> None:
        buffer = _buffer()
        self.assertEqual(buffer.rendered_text(), NO_IR_GENERATED_TEXT)
        self.assertNotEqual(buffer.rendered_text(), "")

    def test_rendered_text_has_one_physical_line_per_display_line(self) -> None:
        buffer = _buffer(
            DisplayLine("define i32 @f() {"),
            DisplayLine("  ret i32 0", SourceRef("a.c", 2)),
            DisplayLine("}"),
        )
        rendered = buffer.rendered_text()
        self.assertEqual(rendered, "define i32 @f() {\n  ret i32 0\n}")
        self.assertEqual(len(rendered.split("\n")), len(buffer))

    def test_replace_discards_previous_lines(self) -> None:
        buffer = _buffer(DisplayLine("old 1"), DisplayLine("old 2"))
        buffer.replace([DisplayLine("new")])
        self.assertEqual(buffer.rendered_text(), "new")
        self.assertEqual(len(buffer), 1)

    def test_multi_line_text_is_split_into_physical_lines(self) -> None:
        source = SourceRef("a.c", 3)
        buffer = _buffer(
            DisplayLine("a\nb", source),
            DisplayLine("c\r\nd"),
            DisplayLine("e", SourceRef("a.c", 9)),
        )
        self.assertEqual([line.text for line in buffer.lines], ["a", "b", "c", "d", "e"])
        self.assertEqual(buffer.lines[1].source, source)
        self.assertEqual(len(buffer.rendered_text().split("\n")), len(buffer))
        self.assertEqual(LineMapper(buffer).resolve(5), SourceRef("a.c", 9))

    def test_pass_headers_are_indexed_by_line(self) -> None:
        buffer = _buffer(
            DisplayLine("; *** IR Dump After InstCombinePass on main ***"),
            DisplayLine("  %a = add i32 1, 2"),
            DisplayLine("; *** IR Dump Before VerifierPass on [module] ***"),
            DisplayLine("; *** IR Dump After CoroCleanupPass ***"),
        )
        headers = buffer.pass_headers()
        self.assertEqual([h.line_index for h in headers], [0, 2, 3])
        self.assertEqual(headers[0].pass_name, "InstCombinePass")
        self.assertEqual(headers[0].function, "main")
        self.assertEqual(headers[0].label, "InstCombinePass (main)")
        self.assertEqual(headers[1].when, "before")
        self.assertEqual(headers[1].function, "[module]")
        self.assertIsNone(headers[2].function)
        self.assertEqual(headers[2].label, "CoroCleanupPass")


class LineMapperTests(unittest.TestCase):
    def setUp(self) -> None:
        self.buffer = _buffer(
            DisplayLine("%a = add i32 1, 2", SourceRef("a.c", 5)),
            DisplayLine("; synthesized"),
            DisplayLine("%b = mul i32 %a, 2", SourceRef(None, 6)),
        )
        self.mapper = LineMapper(self.buffer)

    def test_resolves_mapped_line(self) -> None:
        self.assertEqual(self.mapper.resolve(1), SourceRef("a.c", 5))

    def test_out_of_range_lines_are_not_mapped(self) -> None:
        for line in (-3, 0, 4, 100):
            with self.subTest(line=line):
                self.assertIsNone(self.mapper.resolve(line))

    def test_line_without_source_or_file_is_not_mapped(self) -> None:
        self.assertIsNone(self.mapper.resolve(2))
        self.assertIsNone(self.mapper.resolve(3))

    def test_mapper_follows_buffer_replacement(self) -> None:
        self.buffer.replace([DisplayLine("x", SourceRef("b.c", 9))])
        self.assertEqual(self.mapper.resolve(1), SourceRef("b.c", 9))
        self.assertIsNone(self.mapper.resolve(3))


class CompileResultTests(unittest.TestCase):
    def test_from_json_reads_pipeline_output(self) -> None:
        result = CompileResult.from_json(
            {
                "hasLLVMOptPipelineOutput": True,
                "llvmOptPipelineOutput": [
                    {"text": "%a = add i32 1, 2", "source": {"file": "a.c", "line": 5}},
                    {"text": "ret void", "source": None},
                ],
            }
        )
        self.assertTrue(result.has_output)
        self.assertEqual(result.output[0], DisplayLine("%a = add i32 1, 2", SourceRef("a.c", 5)))
        self.assertIsNone(result.output[1].source)

    def test_from_json_without_output(self) -> None:
        result = CompileResult.from_json({"code": 0})
        self.assertFalse(result.has_output)
        self.assertEqual(result.output, ())

    def test_from_json_rejects_malformed_payloads(self) -> None:
        with self.assertRaises(PayloadError):
            CompileResult.from_json(["not", "an", "object"])  # type: ignore[arg-type]
        with self.assertRaises(PayloadError):
            CompileResult.from_json({"hasLLVMOptPipelineOutput": True, "llvmOptPipelineOutput": "text"})
        with self.assertRaises(PayloadError):
            CompileResult.from_json({"hasLLVMOptPipelineOutput": True, "llvmOptPipelineOutput": [{"source": None}]})
        with self.assertRaises(PayloadError):
            CompileResult.from_json(
                {"llvmOptPipelineOutput": [{"text": "x", "source": {"file": "a.c", "line": "abc"}}]}
            )
        with self.assertRaises(PayloadError):
            CompilerInfo.from_json("clang")  # type: ignore[arg-type]

    def test_classify_prefers_unsupported_over_output(self) -> None:
        populated = CompileResult(has_output=True, output=(DisplayLine("x"),))
        empty = CompileResult(has_output=False)
        supported = CompilerInfo("clang", True)
        unsupported = CompilerInfo("gcc", False)
        self.assertIs(populated.classify(supported), ResultKind.POPULATED)
        self.assertIs(empty.classify(supported), ResultKind.EMPTY)
        self.assertIs(populated.classify(unsupported), ResultKind.UNSUPPORTED)
        self.assertIs(empty.classify(unsupported), ResultKind.UNSUPPORTED)

    def test_compiler_info_from_json(self) -> None:
        info = CompilerInfo.from_json({"name": "clang 17", "supportsLLVMOptPipelineView": True})
        self.assertEqual(info, CompilerInfo("clang 17", True))


class PaneSnapshotTests(unittest.TestCase):
    def test_snapshot_uses_layout_state_keys(self) -> None:
        snapshot = PaneSnapshot(
            compiler_id=3,
            compiler_name="clang",
            editor_id=1,
            tree_id=None,
            selection=ViewportSelection(4, 1, 6, 10),
        )
        data = snapshot.to_json()
        self.assertEqual(data["id"], 3)
        self.assertEqual(data["editorid"], 1)
        self.assertEqual(data["selection"]["startLineNumber"], 4)
        self.assertEqual(data["selection"]["endColumn"], 10)
        self.assertEqual(PaneSnapshot.from_json(data), snapshot)

    def test_snapshot_without_id_is_rejected(self) -> None:
        with self.assertRaises(PayloadError):
            PaneSnapshot.from_json({"editorid": 1})

    def test_malformed_snapshot_fields_are_payload_errors(self) -> None:
        bad_states = (
            {"id": "x"},
            {"id": 1, "editorid": "one"},
            {"id": 1, "selection": {"startColumn": 1}},
            {"id": 1, "selection": {"startLineNumber": 1, "endLineNumber": None}},
            {"id": 1, "selection": [1, 2]},
        )
        for data in bad_states:
            with self.subTest(data=data):
                with self.assertRaises(PayloadError):
                    PaneSnapshot.from_json(data)


class TitleTests(unittest.TestCase):
    def test_default_title(self) -> None:
        binding = CompilerBinding(compiler_id=2, compiler_name="clang", editor_id=1)
        self.assertEqual(format_title(None, binding), f"{DEFAULT_PANE_NAME} clang (Editor #1, Compiler #2)")

    def test_custom_name_and_unknown_editor(self) -> None:
        binding = CompilerBinding(compiler_id=2)
        self.assertEqual(format_title("Passes", binding), "Passes (Editor #?, Compiler #2)")


class ViewOptionsTests(unittest.TestCase):
    def test_apply_settings_ignores_unknown_keys(self) -> None:
        options = ViewOptions()
        options.apply_settings({"soft_wrap": True, "colourScheme": "rainbow"})
        self.assertTrue(options.soft_wrap)
        self.assertFalse(hasattr(options, "colourScheme"))
        self.assertEqual(options.as_settings()["soft_wrap"], True)


if __name__ == "__main__":
    unittest.main()
