"""Tests for the output layer.

Covers:
- NO_COLOR / TERM=dumb colour disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- The formatter registry and each formatter
- Writing to stdout or a --save file
"""

from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path

import pytest
import yaml

from ontap.exceptions import UnsupportedFormatError
from ontap.output import (
    FORMATTERS,
    OutputManager,
    _should_disable_color,
    format_csv,
    format_json,
    format_table,
    format_text,
    format_yaml,
    get_formatter,
    write_output,
)


PETS = [
    {"id": 1, "name": "Rex", "tags": ["dog"]},
    {"id": 2, "name": "Tom", "owner": {"name": "Ann"}},
]


# ------------------------------------------------------------------ #
# Colour control
# ------------------------------------------------------------------ #


class TestColorDetection:
    def test_no_color_any_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color()

    def test_term_dumb(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color()

    def test_enabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert not _should_disable_color()


# ------------------------------------------------------------------ #
# Stream discipline
# ------------------------------------------------------------------ #


class TestOutputManager:
    def test_data_goes_to_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        OutputManager(no_color=True).print_data('{"a": 1}')
        captured = capsys.readouterr()
        assert captured.out == '{"a": 1}\n'
        assert captured.err == ""

    def test_no_double_newline(self, capsys: pytest.CaptureFixture[str]) -> None:
        OutputManager(no_color=True).print_data("line\n")
        assert capsys.readouterr().out == "line\n"

    def test_diagnostics_go_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        out = OutputManager(no_color=True)
        out.info("loading")
        out.success("done")
        out.warning("careful")
        out.error("broken")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.splitlines() == [
            "loading",
            "done",
            "Warning: careful",
            "Error: broken",
        ]

    def test_quiet_suppresses_info_only(self, capsys: pytest.CaptureFixture[str]) -> None:
        out = OutputManager(no_color=True, quiet=True)
        out.info("hidden")
        out.success("hidden")
        out.warning("shown")
        out.error("shown too")
        assert capsys.readouterr().err.splitlines() == ["Warning: shown", "Error: shown too"]

    def test_debug_only_when_verbose(self, capsys: pytest.CaptureFixture[str]) -> None:
        OutputManager(no_color=True).debug("nope")
        assert capsys.readouterr().err == ""
        verbose = OutputManager(no_color=True, verbose=True)
        assert verbose.is_verbose
        verbose.debug("yes")
        assert capsys.readouterr().err == "[debug] yes\n"

    def test_rich_console_escapes_markup(self, capsys: pytest.CaptureFixture[str]) -> None:
        out = OutputManager(no_color=False)
        out._no_color = False
        out.warning("value [bold]x[/bold]")
        assert "[bold]x[/bold]" in capsys.readouterr().err


# ------------------------------------------------------------------ #
# Formatters
# ------------------------------------------------------------------ #


class TestGetFormatter:
    @pytest.mark.parametrize("name", ["json", "yaml", "csv", "text", "table"])
    def test_registered(self, name: str) -> None:
        assert get_formatter(name) is FORMATTERS[name]

    def test_case_insensitive(self) -> None:
        assert get_formatter("JSON") is format_json

    def test_unknown(self) -> None:
        with pytest.raises(UnsupportedFormatError, match="unsupported output format 'xml'") as e:
            get_formatter("xml")
        assert e.value.exit_code == 2


class TestFormatJson:
    def test_indented(self) -> None:
        text = format_json({"a": [1, 2]}).decode()
        assert text == '{\n  "a": [\n    1,\n    2\n  ]\n}\n'

    def test_unicode_kept(self) -> None:
        assert "Åse" in format_json({"name": "Åse"}).decode()

    def test_raw_string(self) -> None:
        assert json.loads(format_json("not json")) == "not json"


class TestFormatYaml:
    def test_order_kept(self) -> None:
        text = format_yaml({"b": 1, "a": 2}).decode()
        assert text.index("b:") < text.index("a:")
        assert yaml.safe_load(text) == {"b": 1, "a": 2}


class TestFormatText:
    def test_string(self) -> None:
        assert format_text("hello") == b"hello\n"

    def test_none(self) -> None:
        assert format_text(None) == b"\n"


class TestFormatCsv:
    def test_union_of_columns(self) -> None:
        rows = list(csv.reader(io.StringIO(format_csv(PETS).decode())))
        assert rows[0] == ["id", "name", "tags", "owner"]
        assert rows[1] == ["1", "Rex", '["dog"]', ""]
        assert rows[2] == ["2", "Tom", "", '{"name": "Ann"}']

    def test_single_object(self) -> None:
        rows = list(csv.reader(io.StringIO(format_csv({"a": 1}).decode())))
        assert rows == [["a"], ["1"]]

    def test_scalars_in_value_column(self) -> None:
        rows = list(csv.reader(io.StringIO(format_csv(["x", "y"]).decode())))
        assert rows == [["value"], ["x"], ["y"]]


class TestFormatTable:
    def test_headers_and_cells(self) -> None:
        text = format_table(PETS).decode()
        for cell in ("id", "name", "owner", "Rex", "Tom"):
            assert cell in text


# ------------------------------------------------------------------ #
# Writing
# ------------------------------------------------------------------ #


class TestWriteOutput:
    def test_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        write_output(b'{"a": 1}\n', OutputManager(no_color=True))
        assert capsys.readouterr().out == '{"a": 1}\n'

    def test_save_to_file(
        self,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        caplog.set_level(logging.INFO, logger="ontap")
        target = tmp_path / "out.json"
        write_output(b'{"a": 1}\n', OutputManager(no_color=True), str(target))
        assert target.read_bytes() == b'{"a": 1}\n'
        assert capsys.readouterr().out == ""
        assert "Output written to" in caplog.text
